from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Pydantic models (wallet API boundary) ---


class _APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class AccountBalance(_APIModel):
    currency: str
    available: Decimal
    pending: Decimal = Decimal(0)

    @property
    def total(self) -> Decimal:
        return self.available + self.pending


class UnspentOutput(_APIModel):
    tx_hash: str = Field(alias="tx_hash_big_endian")
    index: int = Field(alias="tx_output_n")
    value: int
    confirmations: int = 0
    script: str = ""


class UnspentOutputs(_APIModel):
    outputs: tuple[UnspentOutput, ...] = Field(default=(), alias="unspent_outputs")

    @classmethod
    def empty(cls) -> UnspentOutputs:
        return cls(outputs=())

    @property
    def count(self) -> int:
        return len(self.outputs)

    @property
    def total_value(self) -> int:
        return sum(output.value for output in self.outputs)


class TradingPair(_APIModel):
    pair: str
    buy_min: Decimal = Field(alias="buyMin")
    buy_max: Decimal = Field(alias="buyMax")

    @field_validator("pair")
    @classmethod
    def _crypto_dash_fiat(cls, value: str) -> str:
        crypto, sep, fiat = value.partition("-")
        if not (crypto and sep and fiat):
            raise ValueError(f"trading pair must look like CRYPTO-FIAT, got {value!r}")
        return value

    @property
    def crypto(self) -> str:
        return self.pair.split("-", 1)[0]

    @property
    def fiat(self) -> str:
        return self.pair.split("-", 1)[1]


class SupportedPairs(_APIModel):
    pairs: tuple[TradingPair, ...] = ()

    @classmethod
    def empty(cls) -> SupportedPairs:
        return cls(pairs=())

    def only(self, fiat_currency: str) -> SupportedPairs:
        return SupportedPairs(pairs=tuple(p for p in self.pairs if p.fiat == fiat_currency))

    @property
    def cryptos(self) -> list[str]:
        return sorted({p.crypto for p in self.pairs})


class WalletAddresses(_APIModel):
    addresses: tuple[str, ...] = ()
