"""Pydantic models for REST indexer responses.

Only the fields the pool reads are declared; everything else the indexer
returns is ignored.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class AddressDetails(BaseModel):
    """Response of `address/details/{address}`."""

    address: str | None = None
    balance: Decimal = Field(description="Confirmed coin balance.")
    unconfirmed_balance: Decimal = Field(default=Decimal(0), alias="unconfirmedBalance")
    transactions: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class TxInput(BaseModel):
    """One input of a transaction."""

    addr: str | None = None
    cash_address: str | None = Field(default=None, alias="cashAddress")
    value: Decimal | None = None

    model_config = {"populate_by_name": True}

    @property
    def address(self) -> str | None:
        """Sender address, preferring the cash address format."""
        return self.cash_address or self.addr


class ScriptPubKey(BaseModel):
    """Output script, reduced to the addresses it pays."""

    addresses: list[str] = Field(default_factory=list)
    cash_addrs: list[str] = Field(default_factory=list, alias="cashAddrs")

    model_config = {"populate_by_name": True}


class TxOutput(BaseModel):
    """One output of a transaction."""

    value: Decimal
    script_pub_key: ScriptPubKey = Field(default_factory=ScriptPubKey, alias="scriptPubKey")

    model_config = {"populate_by_name": True}

    def pays(self, address: str) -> bool:
        """True if this output pays the given address (either format)."""
        return address in self.script_pub_key.addresses or address in self.script_pub_key.cash_addrs


class TxDetails(BaseModel):
    """One entry of the `transaction/details` response."""

    txid: str
    confirmations: int = Field(default=0, ge=0)
    vin: list[TxInput] = Field(default_factory=list)
    vout: list[TxOutput] = Field(default_factory=list)
