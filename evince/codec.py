"""
Protobuf schemas and JSON transformation for the upstream query methods.

The messages the gateway queries and re-serializes are described here in
full. Fields a node sends that are not declared below, such as ones added by
a newer chain release, are skipped on decode and left out of the JSON payload.

Cosmos `Dec` values travel as integer strings scaled by 10^18 and are
rendered in JSON with the decimal point restored.

Message classes are built at import time from descriptors into a private
descriptor pool, so they never clash with generated modules registered by
other packages.
"""
import json
from decimal import Decimal
from typing import Any, Iterable, Optional, Type

from google.protobuf import any_pb2, descriptor_pb2, descriptor_pool, json_format, message_factory, timestamp_pb2
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import DecodeError, Message

from .errors import MarshalResponseError, UnmarshalResponseError

_F = descriptor_pb2.FieldDescriptorProto

STRING = _F.TYPE_STRING
BYTES = _F.TYPE_BYTES
BOOL = _F.TYPE_BOOL
INT64 = _F.TYPE_INT64
UINT64 = _F.TYPE_UINT64
UINT32 = _F.TYPE_UINT32
MESSAGE = _F.TYPE_MESSAGE
ENUM = _F.TYPE_ENUM

POOL = descriptor_pool.DescriptorPool()

DEC_PRECISION = 18

# Fields declared as sdk.Dec upstream.
DEC_FIELDS = frozenset([
    "cosmos.staking.v1beta1.Validator.delegator_shares",
    "cosmos.staking.v1beta1.CommissionRates.rate",
    "cosmos.staking.v1beta1.CommissionRates.max_rate",
    "cosmos.staking.v1beta1.CommissionRates.max_change_rate",
    "cosmos.staking.v1beta1.Delegation.shares",
    "quicksilver.interchainstaking.v1.Validator.commission_rate",
    "quicksilver.interchainstaking.v1.Validator.delegator_shares",
    "quicksilver.interchainstaking.v1.Validator.score",
    "quicksilver.interchainstaking.v1.ValidatorIntent.weight",
    "quicksilver.interchainstaking.v1.Zone.redemption_rate",
    "quicksilver.interchainstaking.v1.Zone.last_redemption_rate",
    "quicksilver.interchainstaking.v1.Zone.tvl",
])


def _field(number: int, name: str, kind: int, type_name: Optional[str] = None,
           repeated: bool = False) -> _F:
    field = _F(
        name=name,
        number=number,
        type=kind,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name:
        field.type_name = type_name
    return field


def _message(name: str, *fields: _F) -> descriptor_pb2.DescriptorProto:
    return descriptor_pb2.DescriptorProto(name=name, field=list(fields))


def _file(name: str, package: str, messages: Iterable[descriptor_pb2.DescriptorProto],
          dependencies: Iterable[str] = (), enums: Iterable[descriptor_pb2.EnumDescriptorProto] = ()) -> None:
    proto = descriptor_pb2.FileDescriptorProto(
        name=name,
        package=package,
        syntax="proto3",
        dependency=list(dependencies),
        message_type=list(messages),
        enum_type=list(enums),
    )
    POOL.AddSerializedFile(proto.SerializeToString())


def _register_well_known(module) -> None:
    proto = descriptor_pb2.FileDescriptorProto()
    module.DESCRIPTOR.CopyToProto(proto)
    POOL.AddSerializedFile(proto.SerializeToString())


_register_well_known(any_pb2)
_register_well_known(timestamp_pb2)

_file(
    "cosmos/base/v1beta1/coin.proto", "cosmos.base.v1beta1",
    [_message("Coin", _field(1, "denom", STRING), _field(2, "amount", STRING))],
)

_file(
    "cosmos/base/query/v1beta1/pagination.proto", "cosmos.base.query.v1beta1",
    [
        _message(
            "PageRequest",
            _field(1, "key", BYTES),
            _field(2, "offset", UINT64),
            _field(3, "limit", UINT64),
            _field(4, "count_total", BOOL),
            _field(5, "reverse", BOOL),
        ),
        _message("PageResponse", _field(1, "next_key", BYTES), _field(2, "total", UINT64)),
    ],
)

# Public key types that appear packed in Any as a validator's consensus key.
_file("cosmos/crypto/ed25519/keys.proto", "cosmos.crypto.ed25519",
      [_message("PubKey", _field(1, "key", BYTES))])
_file("cosmos/crypto/secp256k1/keys.proto", "cosmos.crypto.secp256k1",
      [_message("PubKey", _field(1, "key", BYTES))])

_file(
    "cosmos/staking/v1beta1/staking.proto", "cosmos.staking.v1beta1",
    [
        _message(
            "Description",
            _field(1, "moniker", STRING),
            _field(2, "identity", STRING),
            _field(3, "website", STRING),
            _field(4, "security_contact", STRING),
            _field(5, "details", STRING),
        ),
        _message(
            "CommissionRates",
            _field(1, "rate", STRING),
            _field(2, "max_rate", STRING),
            _field(3, "max_change_rate", STRING),
        ),
        _message(
            "Commission",
            _field(1, "commission_rates", MESSAGE, ".cosmos.staking.v1beta1.CommissionRates"),
            _field(2, "update_time", MESSAGE, ".google.protobuf.Timestamp"),
        ),
        _message(
            "Validator",
            _field(1, "operator_address", STRING),
            _field(2, "consensus_pubkey", MESSAGE, ".google.protobuf.Any"),
            _field(3, "jailed", BOOL),
            _field(4, "status", ENUM, ".cosmos.staking.v1beta1.BondStatus"),
            _field(5, "tokens", STRING),
            _field(6, "delegator_shares", STRING),
            _field(7, "description", MESSAGE, ".cosmos.staking.v1beta1.Description"),
            _field(8, "unbonding_height", INT64),
            _field(9, "unbonding_time", MESSAGE, ".google.protobuf.Timestamp"),
            _field(10, "commission", MESSAGE, ".cosmos.staking.v1beta1.Commission"),
            _field(11, "min_self_delegation", STRING),
            _field(12, "unbonding_on_hold_ref_count", INT64),
            _field(13, "unbonding_ids", UINT64, repeated=True),
        ),
        _message(
            "Delegation",
            _field(1, "delegator_address", STRING),
            _field(2, "validator_address", STRING),
            _field(3, "shares", STRING),
        ),
        _message(
            "DelegationResponse",
            _field(1, "delegation", MESSAGE, ".cosmos.staking.v1beta1.Delegation"),
            _field(2, "balance", MESSAGE, ".cosmos.base.v1beta1.Coin"),
        ),
    ],
    dependencies=["google/protobuf/any.proto", "google/protobuf/timestamp.proto",
                  "cosmos/base/v1beta1/coin.proto"],
    enums=[
        descriptor_pb2.EnumDescriptorProto(
            name="BondStatus",
            value=[
                descriptor_pb2.EnumValueDescriptorProto(name="BOND_STATUS_UNSPECIFIED", number=0),
                descriptor_pb2.EnumValueDescriptorProto(name="BOND_STATUS_UNBONDED", number=1),
                descriptor_pb2.EnumValueDescriptorProto(name="BOND_STATUS_UNBONDING", number=2),
                descriptor_pb2.EnumValueDescriptorProto(name="BOND_STATUS_BONDED", number=3),
            ],
        )
    ],
)

_file(
    "cosmos/staking/v1beta1/query.proto", "cosmos.staking.v1beta1",
    [
        _message(
            "QueryValidatorsRequest",
            _field(1, "status", STRING),
            _field(2, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageRequest"),
        ),
        _message(
            "QueryValidatorsResponse",
            _field(1, "validators", MESSAGE, ".cosmos.staking.v1beta1.Validator", repeated=True),
            _field(2, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageResponse"),
        ),
        _message(
            "QueryDelegatorDelegationsRequest",
            _field(1, "delegator_addr", STRING),
            _field(2, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageRequest"),
        ),
        _message(
            "QueryDelegatorDelegationsResponse",
            _field(1, "delegation_responses", MESSAGE, ".cosmos.staking.v1beta1.DelegationResponse",
                   repeated=True),
            _field(2, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageResponse"),
        ),
    ],
    dependencies=["cosmos/staking/v1beta1/staking.proto", "cosmos/base/query/v1beta1/pagination.proto"],
)

_file(
    "quicksilver/interchainstaking/v1/interchainstaking.proto", "quicksilver.interchainstaking.v1",
    [
        _message(
            "ICAAccount",
            _field(1, "address", STRING),
            _field(2, "balance", MESSAGE, ".cosmos.base.v1beta1.Coin", repeated=True),
            _field(3, "port_name", STRING),
            _field(4, "withdrawal_address", STRING),
            _field(5, "balance_waitgroup", UINT32),
        ),
        _message(
            "Validator",
            _field(1, "valoper_address", STRING),
            _field(2, "commission_rate", STRING),
            _field(3, "delegator_shares", STRING),
            _field(4, "voting_power", STRING),
            _field(5, "score", STRING),
            _field(6, "status", STRING),
            _field(7, "jailed", BOOL),
            _field(8, "tombstoned", BOOL),
            _field(9, "jailed_since", MESSAGE, ".google.protobuf.Timestamp"),
        ),
        _message(
            "ValidatorIntent",
            _field(1, "valoper_address", STRING),
            _field(2, "weight", STRING),
        ),
        _message(
            "Zone",
            _field(1, "connection_id", STRING),
            _field(2, "chain_id", STRING),
            _field(3, "deposit_address", MESSAGE, ".quicksilver.interchainstaking.v1.ICAAccount"),
            _field(4, "withdrawal_address", MESSAGE, ".quicksilver.interchainstaking.v1.ICAAccount"),
            _field(5, "performance_address", MESSAGE, ".quicksilver.interchainstaking.v1.ICAAccount"),
            _field(6, "delegation_address", MESSAGE, ".quicksilver.interchainstaking.v1.ICAAccount"),
            _field(7, "account_prefix", STRING),
            _field(8, "local_denom", STRING),
            _field(9, "base_denom", STRING),
            _field(10, "redemption_rate", STRING),
            _field(11, "last_redemption_rate", STRING),
            _field(12, "validators", MESSAGE, ".quicksilver.interchainstaking.v1.Validator", repeated=True),
            _field(13, "aggregate_intent", MESSAGE, ".quicksilver.interchainstaking.v1.ValidatorIntent",
                   repeated=True),
            _field(14, "multi_send", BOOL),
            _field(15, "liquidity_module", BOOL),
            _field(16, "withdrawal_waitgroup", UINT32),
            _field(17, "ibc_next_validators_hash", BYTES),
            _field(18, "validator_selection_allocation", UINT64),
            _field(19, "holdings_allocation", UINT64),
            _field(20, "last_epoch_height", INT64),
            _field(21, "tvl", STRING),
            _field(22, "unbonding_period", INT64),
            _field(23, "messages_per_tx", INT64),
            _field(24, "decimals", INT64),
        ),
    ],
    dependencies=["google/protobuf/timestamp.proto", "cosmos/base/v1beta1/coin.proto"],
)

_file(
    "quicksilver/interchainstaking/v1/query.proto", "quicksilver.interchainstaking.v1",
    [
        _message(
            "QueryZonesInfoRequest",
            _field(1, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageRequest"),
        ),
        _message(
            "QueryZonesInfoResponse",
            _field(1, "zones", MESSAGE, ".quicksilver.interchainstaking.v1.Zone", repeated=True),
            _field(2, "pagination", MESSAGE, ".cosmos.base.query.v1beta1.PageResponse"),
        ),
    ],
    dependencies=["quicksilver/interchainstaking/v1/interchainstaking.proto",
                  "cosmos/base/query/v1beta1/pagination.proto"],
)


def message_class(full_name: str) -> Type[Message]:
    """Look up a message class by its fully qualified protobuf name."""
    return message_factory.GetMessageClass(POOL.FindMessageTypeByName(full_name))


PageRequest = message_class("cosmos.base.query.v1beta1.PageRequest")
PageResponse = message_class("cosmos.base.query.v1beta1.PageResponse")
Coin = message_class("cosmos.base.v1beta1.Coin")
Validator = message_class("cosmos.staking.v1beta1.Validator")
QueryValidatorsRequest = message_class("cosmos.staking.v1beta1.QueryValidatorsRequest")
QueryValidatorsResponse = message_class("cosmos.staking.v1beta1.QueryValidatorsResponse")
QueryDelegatorDelegationsRequest = message_class("cosmos.staking.v1beta1.QueryDelegatorDelegationsRequest")
QueryDelegatorDelegationsResponse = message_class("cosmos.staking.v1beta1.QueryDelegatorDelegationsResponse")
QueryZonesInfoRequest = message_class("quicksilver.interchainstaking.v1.QueryZonesInfoRequest")
QueryZonesInfoResponse = message_class("quicksilver.interchainstaking.v1.QueryZonesInfoResponse")


def decode(data: bytes, cls: Type[Message]) -> Message:
    """Parse query response bytes into `cls`."""
    try:
        return cls.FromString(data)
    except DecodeError as e:
        raise UnmarshalResponseError(e) from e


def format_dec(raw: str) -> str:
    """
    Render a wire-format Dec (integer scaled by 10^18) as a decimal string.

    An unset Dec renders as zero, e.g. "" -> "0.000000000000000000" and
    "-1500000000000000000" -> "-1.500000000000000000".
    """
    value = int(raw or 0)
    sign = "-" if value < 0 else ""
    digits = str(abs(value)).rjust(DEC_PRECISION + 1, "0")
    return f"{sign}{digits[:-DEC_PRECISION]}.{digits[-DEC_PRECISION:]}"


def _format_decs(message: Message, obj: dict) -> None:
    """Rewrite the Dec fields of `obj`, the dict rendering of `message`, in place."""
    for field in message.DESCRIPTOR.fields:
        if field.name not in obj:
            continue
        repeated = field.label == FieldDescriptor.LABEL_REPEATED
        value = obj[field.name]

        if field.full_name in DEC_FIELDS:
            obj[field.name] = [format_dec(v) for v in value] if repeated else format_dec(value)
        elif field.message_type is not None and not field.message_type.full_name.startswith("google.protobuf."):
            if repeated:
                for item, item_obj in zip(getattr(message, field.name), value):
                    _format_decs(item, item_obj)
            else:
                _format_decs(getattr(message, field.name), value)


def _whole_floats_as_ints(obj: Any) -> Any:
    # Whole-number floats are written without a fraction, e.g. 849500000 not 849500000.0.
    if isinstance(obj, float) and obj.is_integer() and abs(obj) < 1e21:
        return int(Decimal(repr(obj)))
    if isinstance(obj, dict):
        return {k: _whole_floats_as_ints(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_whole_floats_as_ints(v) for v in obj]
    return obj


def dump_json(obj: Any) -> bytes:
    """Serialize a plain JSON value (dict, list, number) as compact UTF-8 bytes."""
    try:
        return json.dumps(_whole_floats_as_ints(obj), separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise MarshalResponseError(e) from e


def message_to_json(message: Message) -> bytes:
    """
    Render a protobuf message as the canonical JSON payload.

    Field names keep their protobuf spelling and fields holding default
    values are always emitted, so clients see a stable shape. 64-bit
    integers are rendered as strings, bytes as base64 and Dec values as
    decimal strings with 18 fractional digits.
    """
    try:
        obj = json_format.MessageToDict(
            message,
            preserving_proto_field_name=True,
            always_print_fields_with_no_presence=True,
            descriptor_pool=POOL,
        )
        _format_decs(message, obj)
    except (json_format.Error, TypeError, ValueError, KeyError) as e:
        raise MarshalResponseError(e) from e
    return dump_json(obj)
