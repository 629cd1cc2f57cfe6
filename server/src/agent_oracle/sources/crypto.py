"""Crypto spot price clients."""

from agent_oracle.exceptions import SourceError
from agent_oracle.models.params import CryptoParams
from agent_oracle.models.request import DataType
from agent_oracle.models.source import DataSource
from agent_oracle.sources.base import BaseSourceClient, dig, ticker_symbol, to_finite_float

COINGECKO = DataSource(name="CoinGecko", endpoint_template="https://api.coingecko.com/api/v3")
BINANCE = DataSource(name="Binance", endpoint_template="https://api.binance.com/api/v3")
COINBASE = DataSource(name="Coinbase", endpoint_template="https://api.coinbase.com/v2")
KRAKEN = DataSource(name="Kraken", endpoint_template="https://api.kraken.com/0/public")

# Kraken still lists bitcoin under its legacy XBT code
_KRAKEN_SYMBOLS = {"BTC": "XBT"}


class CoinGeckoClient(BaseSourceClient):
    """USD price from CoinGecko's simple price endpoint."""

    data_type = DataType.CRYPTO_PRICE

    def __init__(self, source: DataSource = COINGECKO, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: CryptoParams) -> float:
        data = await self._get_json(
            "simple/price",
            {"ids": params.pair, "vs_currencies": "usd"},
        )
        return to_finite_float(dig(data, params.pair, "usd", source=self.name), self.name)


class BinanceClient(BaseSourceClient):
    """Last traded price against USDT from Binance."""

    data_type = DataType.CRYPTO_PRICE

    def __init__(self, source: DataSource = BINANCE, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: CryptoParams) -> float:
        symbol = f"{ticker_symbol(params.pair)}USDT"
        data = await self._get_json("ticker/price", {"symbol": symbol})
        return to_finite_float(dig(data, "price", source=self.name), self.name)


class CoinbaseClient(BaseSourceClient):
    """Spot USD price from Coinbase."""

    data_type = DataType.CRYPTO_PRICE

    def __init__(self, source: DataSource = COINBASE, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: CryptoParams) -> float:
        data = await self._get_json(f"prices/{ticker_symbol(params.pair)}-USD/spot")
        return to_finite_float(dig(data, "data", "amount", source=self.name), self.name)


class KrakenClient(BaseSourceClient):
    """Last trade close price from Kraken's public ticker."""

    data_type = DataType.CRYPTO_PRICE

    def __init__(self, source: DataSource = KRAKEN, **kwargs) -> None:
        super().__init__(source, **kwargs)

    async def call(self, params: CryptoParams) -> float:
        symbol = ticker_symbol(params.pair)
        symbol = _KRAKEN_SYMBOLS.get(symbol, symbol)
        data = await self._get_json("Ticker", {"pair": f"{symbol}USD"})

        errors = data.get("error") if isinstance(data, dict) else None
        if errors:
            raise SourceError(self.name, f"API error: {errors}")

        result = dig(data, "result", source=self.name)
        if not isinstance(result, dict) or not result:
            raise SourceError(self.name, "empty ticker result")
        # Result is keyed by Kraken's own pair name, e.g. XXBTZUSD
        ticker = next(iter(result.values()))
        return to_finite_float(dig(ticker, "c", 0, source=self.name), self.name)
