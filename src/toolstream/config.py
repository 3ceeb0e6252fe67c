import logging

from pydantic import BaseModel, Field

from toolstream.builtin.memory import render_memories

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Send ``toolstream`` logs to stderr (and optionally a file).

    The library never configures logging on import; applications call
    this once at startup if they want the default format.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )


class SessionConfig(BaseModel):
    """Per-session settings.

    Args:
        system_prompt: Instructions sent as a leading system message.
            Injected at request time, never stored in the transcript.
        memories: Long-term memories appended to the system prompt under
            ``## What I remember``.
        require_done: Treat a stream that ends without ``[DONE]`` as a
            transport failure instead of a success.
        queue_size: How many output chunks may wait for the caller.
        tool_error_prefix: Prefix for synthesised tool error results.
    """

    system_prompt: str | None = None
    memories: list[str] = Field(default_factory=list)
    require_done: bool = False
    queue_size: int = Field(default=1, ge=1)
    tool_error_prefix: str = "Error"

    def system_message(self) -> str | None:
        parts = [p for p in (self.system_prompt, render_memories(self.memories)) if p]
        return "\n\n".join(parts) or None
