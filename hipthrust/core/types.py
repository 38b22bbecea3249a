from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, Dict, Optional, Union


Context = Dict[str, Any]
Stage = Callable[..., Union[Any, Awaitable[Any]]]

# Stage names in execution order.
STAGE_ORDER = (
    "init_pre_context",
    "sanitize_params",
    "sanitize_query_params",
    "sanitize_body",
    "pre_authorize",
    "attach_data",
    "final_authorize",
    "do_work",
    "respond",
    "sanitize_response",
)

REQUIRED_STAGES = frozenset({"pre_authorize", "final_authorize", "respond", "sanitize_response"})
AUTHORIZATION_STAGES = frozenset({"pre_authorize", "final_authorize"})


@dataclass
class WorkResponse:
    """Unsanitized response body plus the HTTP status to send it with."""

    response: Any
    status: int = 200


@dataclass
class RequestContext:
    """What ``init_pre_context`` receives from the framework binding."""

    request: Any
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class HandlerConfig:
    """One optional callable per pipeline stage.

    ``pre_authorize``, ``final_authorize``, ``respond`` and
    ``sanitize_response`` must be set before the config can be compiled.
    """

    init_pre_context: Optional[Stage] = None
    sanitize_params: Optional[Stage] = None
    sanitize_query_params: Optional[Stage] = None
    sanitize_body: Optional[Stage] = None
    pre_authorize: Optional[Stage] = None
    attach_data: Optional[Stage] = None
    final_authorize: Optional[Stage] = None
    do_work: Optional[Stage] = None
    respond: Optional[Stage] = None
    sanitize_response: Optional[Stage] = None

    def stages(self) -> Dict[str, Stage]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}
