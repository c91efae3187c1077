"""Response types."""
import asyncio
from typing import Callable

from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send


class JobFileResponse(FileResponse):
    """
    FileResponse that reports whether the body was fully sent.

    `on_complete` runs after the last chunk went out, `on_error` when
    sending raised or was cancelled. Exactly one of them runs.
    """

    def __init__(
        self,
        path,
        on_complete: Callable[[], None],
        on_error: Callable[[BaseException], None],
        **kwargs
    ):
        super().__init__(path, **kwargs)
        self.on_complete = on_complete
        self.on_error = on_error

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (Exception, asyncio.CancelledError) as e:
            self.on_error(e)
            raise
        self.on_complete()
