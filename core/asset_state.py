"""
Asset Availability Aggregator

Merges per-network deposit/withdraw flags into one AssetState per base asset
and propagates the result to every ticker trading that asset.

Rules:
    - An AssetState is created on first observation and never deleted
    - Networks are keyed by "<asset>-<network>"; a known network only gets its
      deposit/withdraw flags updated (fee and limits are kept from creation)
    - active = any network can deposit or withdraw
    - Tickers whose comp_name matches the asset receive active/deposit/withdraw
      in the same call

Malformed feed records are skipped so a partial exchange outage leaves the
last known state in place rather than freezing a healthy asset.
"""

from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from core.logging import get_logger, log_market_event
from core.schemas import AssetState, NetworkMeta, NetworkState, RawNetworkState, TickerSet


logger = get_logger(__name__)


# wallet_state -> (deposit, withdraw)
WALLET_STATES = {
    "working": (True, True),
    "deposit_only": (True, False),
    "withdraw_only": (False, True),
    "paused": (False, False),
    "unsupported": (False, False),
}


def flags_from_wallet_state(wallet_state: Optional[str]) -> Optional[Tuple[bool, bool]]:
    """
    Map a single wallet-state string to (deposit, withdraw) flags.

    Some exchanges (Upbit, Bithumb) report one status per currency instead of
    two booleans.

    Returns:
        (deposit, withdraw), or None when the state is unknown
    """
    if not wallet_state:
        return None
    return WALLET_STATES.get(wallet_state.strip().lower())


def network_key(asset: str, network_id: Optional[str]) -> str:
    return f"{asset}-{network_id or asset}"


def _chain_name(asset: str, network_id: Optional[str]) -> str:
    return network_id.replace("-", "") if network_id else asset


def _recompute(state: AssetState) -> None:
    state.deposit = any(n.deposit for n in state.networks)
    state.withdraw = any(n.withdraw for n in state.networks)
    state.active = any(n.deposit or n.withdraw for n in state.networks)


def propagate(ticker_set: TickerSet, state: AssetState) -> int:
    """
    Copy an AssetState's flags onto every ticker sharing its asset.

    Returns:
        int: Number of tickers updated
    """
    count = 0
    with ticker_set.lock:
        for ticker in ticker_set.tickers_for_asset(state.base_name):
            ticker.active = state.active
            ticker.deposit = state.deposit
            ticker.withdraw = state.withdraw
            count += 1
    return count


def merge_network(
    ticker_set: TickerSet,
    asset: str,
    network_id: Optional[str],
    deposit: bool,
    withdraw: bool,
    meta: Optional[NetworkMeta] = None,
) -> AssetState:
    """
    Merge one network's capability flags into the asset's state.

    Args:
        ticker_set: Ticker set owning the asset states and tickers
        asset: Base asset code (matches Ticker.comp_name)
        network_id: Network/chain identifier (None when the exchange has one network per asset)
        deposit: Deposit currently enabled on this network
        withdraw: Withdrawal currently enabled on this network
        meta: Fee/limit metadata, only applied when the network is first seen

    Returns:
        AssetState: The created or updated state

    Example:
        >>> state = merge_network(tickers, "USDT", "TRC20", True, False)
        >>> state.active, state.deposit, state.withdraw
        (True, True, False)
    """
    with ticker_set.lock:
        state = ticker_set.get_state(asset)
        if state is None:
            state = AssetState(base_name=asset, networks=[])
            ticker_set.states.append(state)
            logger.debug(f"{ticker_set.exchange}: new asset state {asset}")

        name = network_key(asset, network_id)
        network = state.find_network(name)
        if network is None:
            meta = meta or NetworkMeta()
            network = NetworkState(
                name=name,
                network=network_id or asset,
                chain=meta.chain or _chain_name(asset, network_id),
                withdraw_fee=meta.withdraw_fee,
                min_withdrawal=meta.min_withdrawal,
                max_withdrawal=meta.max_withdrawal,
                min_confirm=meta.min_confirm,
            )
            state.networks.append(network)

        network.deposit = deposit
        network.withdraw = withdraw

        _recompute(state)
        propagate(ticker_set, state)

    return state


def apply_network_states(
    ticker_set: TickerSet,
    records: Iterable[Union[RawNetworkState, Mapping[str, Any]]],
) -> int:
    """
    Merge a coin/network-state feed into the ticker set.

    Each record is validated on its own. Records with missing or invalid
    flags are logged and skipped; the asset's previous state stays as it was.

    Args:
        ticker_set: Ticker set to update
        records: RawNetworkState instances or raw dicts (camelCase or snake_case keys)

    Returns:
        int: Number of records merged
    """
    merged = 0

    with ticker_set.lock:
        for record in records:
            if not isinstance(record, RawNetworkState):
                try:
                    record = RawNetworkState.model_validate(record)
                except ValidationError as e:
                    asset = None
                    if isinstance(record, Mapping):
                        asset = record.get("assetCode") or record.get("asset_code")
                    log_market_event(
                        ticker_set.exchange,
                        "network_state_malformed",
                        details=f"asset={asset} errors={e.error_count()}",
                    )
                    continue

            meta = NetworkMeta(
                withdraw_fee=record.fee or 0.0,
                min_withdrawal=record.min_withdraw or 0.0,
                max_withdrawal=record.max_withdraw or 0.0,
                min_confirm=record.min_confirmations or 0,
            )
            merge_network(
                ticker_set,
                record.asset_code,
                record.network_id,
                record.deposit_enabled,
                record.withdraw_enabled,
                meta,
            )
            merged += 1

    logger.info(f"{ticker_set.exchange}: checked deposit & withdraw status ({merged} networks)")
    return merged
