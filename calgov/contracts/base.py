"""
Contract Base

Python-native contracts expose their external surface through the
``@external`` decorator. Each decorated method is registered under its
4-byte selector so that any caller (an account transaction, the timelock,
a forwarding proxy) reaches it through the same ABI dispatch path.

Mutating externals receive the call ``Message`` as first argument; views
take only their ABI arguments and may be called directly from Python.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from ..crypto.abi import (
    compute_function_selector,
    decode_arguments,
    decode_function_call,
    encode_function_call,
    parse_signature,
)
from ..exceptions import InvalidCalldata, InvalidParameter


@dataclass(frozen=True)
class Message:
    """Call context: the immediate caller and attached native value."""
    sender: str
    value: int = 0


@dataclass(frozen=True)
class Event:
    """A log entry emitted by a contract during a transaction."""
    address: str
    name: str
    args: Dict[str, Any]
    block_number: int

    def __getitem__(self, key: str) -> Any:
        return self.args[key]


@dataclass(frozen=True)
class ExternalFunction:
    """ABI metadata for one ``@external`` method."""
    name: str              # Python attribute name
    signature: str         # e.g. "addAllowed(address,uint256)"
    abi_name: str          # e.g. "addAllowed"
    arg_types: Tuple[str, ...] = field(default_factory=tuple)
    view: bool = False
    payable: bool = False

    @property
    def selector(self) -> bytes:
        return compute_function_selector(self.signature)


def external(signature: str, view: bool = False, payable: bool = False):
    """Register a method as an externally callable contract function."""
    def decorator(fn):
        fn._abi_signature = signature
        fn._abi_view = view
        fn._abi_payable = payable
        return fn
    return decorator


# Attributes that belong to the runtime, not to contract storage
_RUNTIME_ATTRIBUTES = frozenset({"chain", "address"})


class Contract:
    """
    Base class for all contracts deployed on a ``Chain``.

    Subclasses implement ``__init__(self, chain, address, msg, *args)`` and
    must call ``super().__init__(chain, address)`` first.
    """

    _abi: Dict[bytes, ExternalFunction] = {}
    _abi_by_name: Dict[str, ExternalFunction] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        abi: Dict[bytes, ExternalFunction] = {}
        by_name: Dict[str, ExternalFunction] = {}
        for klass in reversed(cls.__mro__):
            for attr, fn in vars(klass).items():
                signature = getattr(fn, "_abi_signature", None)
                if signature is None:
                    continue
                abi_name, arg_types = parse_signature(signature)
                ext = ExternalFunction(
                    name=attr,
                    signature=signature,
                    abi_name=abi_name,
                    arg_types=tuple(arg_types),
                    view=fn._abi_view,
                    payable=fn._abi_payable,
                )
                abi[ext.selector] = ext
                by_name[abi_name] = ext
                by_name[signature] = ext
        cls._abi = abi
        cls._abi_by_name = by_name

    def __init__(self, chain, address: str):
        self.chain = chain
        self.address = address

    # ── ABI ───────────────────────────────────────────────────────────

    @classmethod
    def function(cls, name: str) -> ExternalFunction:
        """Look up an external function by ABI name or full signature."""
        ext = cls._abi_by_name.get(name)
        if ext is None:
            raise InvalidCalldata(f"{cls.__name__} has no external function {name!r}")
        return ext

    @classmethod
    def encode_call(cls, name: str, *args) -> bytes:
        """Encode call data for an external function of this contract."""
        return encode_function_call(cls.function(name).signature, *args)

    def dispatch(self, msg: Message, data: bytes) -> Any:
        """Route ABI call data to the matching external method."""
        if not data:
            return self.receive(msg)
        selector, payload = decode_function_call(data)
        ext = self._abi.get(selector)
        if ext is None:
            return self.fallback(msg, data)
        if msg.value and not ext.payable:
            raise InvalidParameter(f"{type(self).__name__}.{ext.abi_name} is not payable")
        args = decode_arguments(ext.arg_types, payload)
        method = getattr(self, ext.name)
        if ext.view:
            return method(*args)
        return method(msg, *args)

    def fallback(self, msg: Message, data: bytes) -> Any:
        raise InvalidCalldata(
            f"{type(self).__name__} at {self.address}: unknown selector 0x{data[:4].hex()}"
        )

    def receive(self, msg: Message) -> None:
        raise InvalidCalldata(f"{type(self).__name__} at {self.address} does not accept plain calls")

    # ── Helpers for subclasses ────────────────────────────────────────

    def _emit(self, name: str, **args) -> Event:
        event = Event(
            address=self.address,
            name=name,
            args=args,
            block_number=self.chain.block_number,
        )
        self.chain.emit(event)
        return event

    def _call(self, target: str, signature: str, *args, value: int = 0) -> Any:
        """Call another contract with this contract as the sender."""
        data = encode_function_call(signature, *args)
        return self.chain.message_call(self.address, target, data, value)

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot_state(self) -> Dict[str, Any]:
        return copy.deepcopy({
            k: v for k, v in vars(self).items() if k not in _RUNTIME_ATTRIBUTES
        })

    def restore_state(self, state: Dict[str, Any]) -> None:
        for key in [k for k in vars(self) if k not in _RUNTIME_ATTRIBUTES]:
            delattr(self, key)
        self.__dict__.update(state)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {self.address}>"
