"""
Background Services

- TickerSetWriter: single writer applying updates to one TickerSet in order
- MarketPoller: periodic snapshot and asset-state refresh of all exchanges
- EventBus: topic pub/sub for market diagnostics
"""
