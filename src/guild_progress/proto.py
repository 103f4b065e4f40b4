"""Protocol messages and gRPC bindings for the guild progress service.

The messages mirror ``protos/guild_progress.proto``. They are built at import
time from a FileDescriptorProto, and the service is registered through a
generic handler, the same way generated ``*_pb2_grpc`` modules register it.
"""

from __future__ import annotations

from typing import Any

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from guild_progress.models import GuildProgress as GuildProgressValue

PACKAGE = "accelbyte.custom.guild"
SERVICE_NAME = f"{PACKAGE}.Service"

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    *,
    label: int = _Field.LABEL_OPTIONAL,
    type_name: str | None = None,
) -> None:
    field = message.field.add(name=name, number=number, type=field_type, label=label)
    if type_name is not None:
        field.type_name = type_name


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="guild_progress.proto",
        package=PACKAGE,
        syntax="proto3",
    )
    progress_type = f".{PACKAGE}.GuildProgress"

    progress = file_proto.message_type.add(name="GuildProgress")
    _add_field(progress, "guild_id", 1, _Field.TYPE_STRING)
    _add_field(progress, "namespace", 2, _Field.TYPE_STRING)
    entry = progress.nested_type.add(name="ObjectivesEntry")
    entry.options.map_entry = True
    _add_field(entry, "key", 1, _Field.TYPE_STRING)
    _add_field(entry, "value", 2, _Field.TYPE_INT32)
    _add_field(
        progress,
        "objectives",
        3,
        _Field.TYPE_MESSAGE,
        label=_Field.LABEL_REPEATED,
        type_name=f"{progress_type}.ObjectivesEntry",
    )

    create_request = file_proto.message_type.add(name="CreateOrUpdateGuildProgressRequest")
    _add_field(create_request, "namespace", 1, _Field.TYPE_STRING)
    _add_field(create_request, "guild_progress", 2, _Field.TYPE_MESSAGE, type_name=progress_type)

    create_response = file_proto.message_type.add(name="CreateOrUpdateGuildProgressResponse")
    _add_field(create_response, "guild_progress", 1, _Field.TYPE_MESSAGE, type_name=progress_type)

    get_request = file_proto.message_type.add(name="GetGuildProgressRequest")
    _add_field(get_request, "namespace", 1, _Field.TYPE_STRING)
    _add_field(get_request, "guild_id", 2, _Field.TYPE_STRING)

    get_response = file_proto.message_type.add(name="GetGuildProgressResponse")
    _add_field(get_response, "guild_progress", 1, _Field.TYPE_MESSAGE, type_name=progress_type)

    service = file_proto.service.add(name="Service")
    for method, request, response in (
        (
            "CreateOrUpdateGuildProgress",
            "CreateOrUpdateGuildProgressRequest",
            "CreateOrUpdateGuildProgressResponse",
        ),
        ("GetGuildProgress", "GetGuildProgressRequest", "GetGuildProgressResponse"),
    ):
        service.method.add(
            name=method,
            input_type=f".{PACKAGE}.{request}",
            output_type=f".{PACKAGE}.{response}",
        )

    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())


def _message_class(name: str) -> Any:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


GuildProgress = _message_class("GuildProgress")
CreateOrUpdateGuildProgressRequest = _message_class("CreateOrUpdateGuildProgressRequest")
CreateOrUpdateGuildProgressResponse = _message_class("CreateOrUpdateGuildProgressResponse")
GetGuildProgressRequest = _message_class("GetGuildProgressRequest")
GetGuildProgressResponse = _message_class("GetGuildProgressResponse")


def to_message(value: GuildProgressValue) -> Any:
    """Convert a domain value into a ``GuildProgress`` message."""
    return GuildProgress(
        guild_id=value.guild_id,
        namespace=value.namespace,
        objectives=dict(value.objectives),
    )


def from_message(message: Any, namespace: str) -> GuildProgressValue:
    """Convert a ``GuildProgress`` message into a domain value.

    Args:
        message: The protocol message.
        namespace: Namespace the request is scoped to. It takes precedence
            over the message's own ``namespace`` field.
    """
    return GuildProgressValue(
        namespace=namespace,
        guild_id=message.guild_id,
        objectives=dict(message.objectives),
    )


def add_guild_progress_servicer(servicer: Any, server: grpc.aio.Server) -> None:
    """Register a servicer's handlers on a server."""
    rpc_method_handlers = {
        "CreateOrUpdateGuildProgress": grpc.unary_unary_rpc_method_handler(
            servicer.CreateOrUpdateGuildProgress,
            request_deserializer=CreateOrUpdateGuildProgressRequest.FromString,
            response_serializer=CreateOrUpdateGuildProgressResponse.SerializeToString,
        ),
        "GetGuildProgress": grpc.unary_unary_rpc_method_handler(
            servicer.GetGuildProgress,
            request_deserializer=GetGuildProgressRequest.FromString,
            response_serializer=GetGuildProgressResponse.SerializeToString,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler(SERVICE_NAME, rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))


class GuildProgressStub:
    """Client stub for the guild progress service."""

    def __init__(self, channel: grpc.aio.Channel) -> None:
        self.CreateOrUpdateGuildProgress = channel.unary_unary(
            f"/{SERVICE_NAME}/CreateOrUpdateGuildProgress",
            request_serializer=CreateOrUpdateGuildProgressRequest.SerializeToString,
            response_deserializer=CreateOrUpdateGuildProgressResponse.FromString,
        )
        self.GetGuildProgress = channel.unary_unary(
            f"/{SERVICE_NAME}/GetGuildProgress",
            request_serializer=GetGuildProgressRequest.SerializeToString,
            response_deserializer=GetGuildProgressResponse.FromString,
        )
