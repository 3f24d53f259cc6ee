from contextvars import ContextVar

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_content_type_ctx: ContextVar[str | None] = ContextVar("content_type", default=None)


def set_request_id(request_id: str | None) -> object:
    return _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def reset_request_id(token: object) -> None:
    _request_id_ctx.reset(token)


def set_content_type(content_type: str | None) -> object:
    return _content_type_ctx.set(content_type)


def get_content_type() -> str | None:
    return _content_type_ctx.get()


def reset_content_type(token: object) -> None:
    _content_type_ctx.reset(token)
