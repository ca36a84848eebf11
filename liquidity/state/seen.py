"""Append-only set of processed transaction ids."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from liquidity.errors import require_txid


class SeenSet:
    """Membership store guarding against settling a transaction twice.

    Ids are never evicted; growth is bounded only by the process lifetime.
    """

    def __init__(self, txids: Iterable[str] | None = None) -> None:
        self._txids: set[str] = set()
        for txid in txids or ():
            self.add(txid)

    def contains(self, txid: str) -> bool:
        return txid in self._txids

    def add(self, txid: str) -> None:
        """Record a transaction id as processed.

        Raises:
            ValidationError: If txid is not a non-empty string
        """
        self._txids.add(require_txid(txid))

    def __contains__(self, txid: object) -> bool:
        return txid in self._txids

    def __len__(self) -> int:
        return len(self._txids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._txids)

    def __repr__(self) -> str:
        return f"SeenSet({len(self._txids)} txids)"
