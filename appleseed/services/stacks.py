"""
Stacks chain client — treasury balance, sBTC transfers, confirmation status.

Reads go to the Hiro REST API. Transfers are signed by an external signer
service (it holds the treasury key) and the signed transaction is broadcast
through Hiro. Amounts are always satoshis of sBTC.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from appleseed.config import HIRO_API_URLS

logger = logging.getLogger('services.stacks')

SBTC_CONTRACTS = {
    'mainnet': 'SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token',
    'testnet': 'ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM.sbtc-token',
}
EXPLORER_TX_URL = 'https://explorer.stacks.co/txid'
MEMO_MAX_BYTES = 34

# c32 alphabet: digits + upper-case letters minus I, L, O, U
ADDRESS_RE = re.compile(r'^S[PT][0-9A-HJKMNP-TV-Z]{38,39}$')
# Address-shaped: c32-like minus I and O; full validation happens afterwards
ADDRESS_CANDIDATE_RE = re.compile(r'\b(?:SP|ST)[0-9A-HJ-NP-Z]{38,39}\b')


class ChainError(Exception):
    """A chain read (balance, transaction lookup) failed."""


def is_valid_stacks_address(address) -> bool:
    """SP (mainnet) or ST (testnet) followed by 38-39 c32 characters."""
    return bool(address) and ADDRESS_RE.match(address) is not None


def extract_address_candidates(text) -> List[str]:
    """Address-shaped tokens in text, first occurrence order, de-duplicated."""
    seen = []
    for token in ADDRESS_CANDIDATE_RE.findall(text or ''):
        if token not in seen:
            seen.append(token)
    return seen


def format_sats(sats) -> str:
    n = int(sats)
    if n >= 100_000_000:
        return f"{n / 100_000_000:.8f} sBTC"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.6f} sBTC"
    return f"{n:,} sats"


def format_stx(micro_stx) -> str:
    return f"{int(micro_stx) / 1_000_000:.6f} STX"


def sbtc_contract(network) -> str:
    return SBTC_CONTRACTS['testnet' if network == 'testnet' else 'mainnet']


def explorer_url(txid, network) -> str:
    suffix = '?chain=testnet' if network == 'testnet' else ''
    return f"{EXPLORER_TX_URL}/{txid}{suffix}"


def normalize_txid(txid) -> str:
    txid = str(txid).strip().strip('"')
    return txid if txid.startswith('0x') else f"0x{txid}"


def truncate_memo(memo) -> str:
    return memo.encode('utf-8')[:MEMO_MAX_BYTES].decode('utf-8', errors='ignore')


@dataclass
class Balance:
    native: int
    token: int


@dataclass
class TransferResult:
    txid: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.txid is not None and self.error is None


@dataclass
class TxStatus:
    status: str  # pending | success | aborted
    block_height: Optional[int] = None


class ChainClient(ABC):
    """What the distributor needs from the chain."""

    @abstractmethod
    def get_balance(self, address) -> Balance:
        ...

    @abstractmethod
    def build_and_broadcast_transfer(self, recipient, amount, memo) -> TransferResult:
        """Never raises; failures come back as TransferResult(error=...)."""
        ...

    @abstractmethod
    def get_transaction_status(self, txid) -> TxStatus:
        ...


class HiroChainClient(ChainClient):

    def __init__(self, network='mainnet', sender_address=None, signer_url=None,
                 signer_api_key=None, hiro_url=None, session=None,
                 hiro_breaker=None, signer_breaker=None, timeout=15):
        self.network = network
        self.sender_address = sender_address
        self.signer_url = signer_url.rstrip('/') if signer_url else None
        self.signer_api_key = signer_api_key
        self.hiro_url = (hiro_url or HIRO_API_URLS.get(network, HIRO_API_URLS['mainnet'])).rstrip('/')
        self.session = session or requests.Session()
        self.hiro_breaker = hiro_breaker
        self.signer_breaker = signer_breaker
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, hiro_breaker=None, signer_breaker=None):
        return cls(
            network=settings.network,
            sender_address=settings.treasury_address,
            signer_url=settings.signer_url,
            signer_api_key=settings.signer_api_key,
            hiro_url=settings.hiro_base_url,
            hiro_breaker=hiro_breaker,
            signer_breaker=signer_breaker,
        )

    def _through(self, breaker, func, *args, **kwargs):
        if breaker is None:
            return func(*args, **kwargs)
        return breaker.call(func, *args, **kwargs)

    # ── Reads ─────────────────────────────────────────────────────────

    def _get_json(self, path):
        response = self.session.get(f"{self.hiro_url}{path}", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _get_tx(self, txid):
        response = self.session.get(f"{self.hiro_url}/extended/v1/tx/{txid}", timeout=self.timeout)
        # Freshly broadcast transactions can 404 until the mempool indexes them
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def get_balance(self, address) -> Balance:
        try:
            data = self._through(self.hiro_breaker, self._get_json,
                                 f"/extended/v1/address/{address}/balances")
        except Exception as e:
            raise ChainError(f"Failed to fetch balances for {address}: {e}") from e

        native = int((data.get('stx') or {}).get('balance') or 0)
        token = 0
        for key, entry in (data.get('fungible_tokens') or {}).items():
            if 'sbtc-token' in key or 'token-sbtc' in key:
                token = int(entry.get('balance') or 0)
                break
        return Balance(native=native, token=token)

    def get_transaction_status(self, txid) -> TxStatus:
        try:
            data = self._through(self.hiro_breaker, self._get_tx, txid)
        except Exception as e:
            raise ChainError(f"Failed to fetch transaction {txid}: {e}") from e

        if data is None:
            return TxStatus('pending')
        status = data.get('tx_status') or 'pending'
        if status == 'success':
            return TxStatus('success', block_height=data.get('block_height'))
        if status.startswith('abort') or status.startswith('dropped'):
            return TxStatus('aborted', block_height=data.get('block_height'))
        return TxStatus('pending')

    # ── Transfers ─────────────────────────────────────────────────────

    def _sign(self, recipient, amount, memo):
        contract = sbtc_contract(self.network)
        headers = {}
        if self.signer_api_key:
            headers['Authorization'] = f'Bearer {self.signer_api_key}'
        payload = {
            'network': self.network,
            'contract': contract,
            'function': 'transfer',
            'sender': self.sender_address,
            'recipient': recipient,
            'amount': int(amount),
            'memo': truncate_memo(memo),
            'post_condition_mode': 'deny',
            'post_conditions': [{
                'type': 'fungible',
                'principal': self.sender_address,
                'asset': f"{contract}::sbtc-token",
                'condition': 'eq',
                'amount': int(amount),
            }],
        }
        response = self.session.post(f"{self.signer_url}/v1/transfers", json=payload,
                                     headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return response.json()['tx_hex']

    def _broadcast(self, tx_hex):
        response = self.session.post(
            f"{self.hiro_url}/v2/transactions",
            data=bytes.fromhex(tx_hex.removeprefix('0x')),
            headers={'Content-Type': 'application/octet-stream'},
            timeout=self.timeout,
        )
        try:
            body = response.json()
        except ValueError:
            body = response.text
        if response.status_code >= 400 or isinstance(body, dict):
            if isinstance(body, dict):
                reason = body.get('reason')
                error = body.get('error')
                return TransferResult(
                    error=f"Broadcast failed: {error} - {reason}" if reason else f"Broadcast failed: {error}",
                )
            return TransferResult(error=f"Broadcast failed: HTTP {response.status_code} {body}")
        return TransferResult(txid=normalize_txid(body))

    def build_and_broadcast_transfer(self, recipient, amount, memo) -> TransferResult:
        if not self.signer_url or not self.sender_address:
            return TransferResult(error='Signer URL and treasury address must be configured')
        logger.info("Building sBTC transfer: %d sats to %s", amount, recipient)
        try:
            tx_hex = self._through(self.signer_breaker, self._sign, recipient, amount, memo)
            return self._through(self.hiro_breaker, self._broadcast, tx_hex)
        except Exception as e:
            return TransferResult(error=str(e))
