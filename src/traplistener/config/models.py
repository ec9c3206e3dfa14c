"""traplistener configuration models"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_ADDRESS = "0.0.0.0:162"


class DecodeConfiguration(BaseModel):
    """Options that control how decoding problems are reported and acted upon"""

    model_config = ConfigDict(extra="forbid")

    # Toggles diagnostics for read and decode errors inside the receive loop
    logging_enabled: bool = False
    # When set, the handler also receives whatever partial packet a failed decoding produced
    dispatch_on_decode_error: bool = True


class ReadErrorPolicy(BaseModel):
    """How the receive loop reacts to failing socket reads.

    The "retry" mode immediately tries to read again, which is also what it does when no policy is configured.
    The "backoff" mode sleeps between failed reads, doubling the delay for every consecutive failure.
    """

    model_config = ConfigDict(extra="forbid")

    mode: Literal["retry", "backoff"] = "retry"
    initial_delay: float = Field(default=0.1, gt=0)
    max_delay: float = Field(default=30.0, gt=0)
    max_consecutive_errors: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_delays(self) -> "ReadErrorPolicy":
        assert self.initial_delay <= self.max_delay, "initial_delay cannot be larger than max_delay"
        return self

    def delay_for(self, consecutive_errors: int) -> float:
        """Returns the number of seconds to wait after the given number of consecutive read errors"""
        if self.mode == "retry" or consecutive_errors < 1:
            return 0.0
        return min(self.initial_delay * 2 ** (consecutive_errors - 1), self.max_delay)

    def is_exhausted(self, consecutive_errors: int) -> bool:
        """Returns True if the receive loop should give up after this many consecutive read errors"""
        return self.max_consecutive_errors is not None and consecutive_errors >= self.max_consecutive_errors


class DispatchConfiguration(BaseModel):
    """Selects between calling the handler directly from the receive loop, or through a bounded queue"""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["sync", "queued"] = "sync"
    queue_size: int = Field(default=1000, ge=1)
    workers: int = Field(default=1, ge=1)


class Configuration(BaseModel):
    """Class for keeping track of the configuration set by traplistener.toml"""

    # throw ValidationError on extra keys
    model_config = ConfigDict(extra="forbid")

    address: str = DEFAULT_ADDRESS
    decoding: DecodeConfiguration = DecodeConfiguration()
    read_errors: ReadErrorPolicy = ReadErrorPolicy()
    dispatch: DispatchConfiguration = DispatchConfiguration()
    logging: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "loggers": {
            "root": {"level": "INFO", "handlers": ["console"]},
            "pysnmp": {"level": "WARNING"},
        },
        "formatters": {"standard": {"format": "%(asctime)s - %(levelname)s - %(name)s (%(threadName)s) - %(message)s"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            }
        },
    }
