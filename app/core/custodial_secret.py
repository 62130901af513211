from contextlib import contextmanager
from typing import Iterator


class CustodialSecret:
    """
    Short-lived holder for decrypted key material.

    The value lives in a mutable buffer that is zeroed by wipe() or when the
    reveal() context exits. repr/str never show the value, and the object
    refuses to be pickled.

    Wiping is best-effort: the immutable bytes the secret was built from
    (library output, Fernet plaintext) cannot be overwritten, so callers drop
    their reference to them right after construction.
    """

    __slots__ = ("_buffer",)

    def __init__(self, value: bytes):
        self._buffer = bytearray(value)

    @contextmanager
    def reveal(self) -> Iterator[bytearray]:
        if not self._buffer:
            raise ValueError("secret already wiped")
        try:
            yield self._buffer
        finally:
            self.wipe()

    def wipe(self) -> None:
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = bytearray()

    @property
    def wiped(self) -> bool:
        return not self._buffer

    def __repr__(self) -> str:
        return "CustodialSecret(**********)"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("CustodialSecret cannot be serialized")

    def __del__(self):
        if getattr(self, "_buffer", None):
            self.wipe()
