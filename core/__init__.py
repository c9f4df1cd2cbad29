"""
Core Package

Contains the exchange-agnostic gateway core including:
- ExchangeAdapter: Abstract base class defining the contract for all exchange adapters
- ExchangeManager: Central coordinator owning adapters, ticker sets and their writers
- Schemas: Pydantic models for tickers, asset states and raw exchange records
- QuoteConverter / VolumeWindowTracker: currency normalization and rolling volume
- Asset state aggregation and snapshot normalization
- auth: request authenticators for every supported signature protocol

Every exchange feeds the same pipeline, so normalized values are comparable across venues.
"""
