import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, PrivateAttr

from ..operations.outcome import OutcomeKind


class ResponseCode(str, Enum):
    OK = "200"
    GENERIC = "500"
    SHUTDOWN = "400"
    CANCELLED = "300"
    IO_FAILURE = "100"
    PUBLISH_FAILURE = "000"
    NO_MESSAGE = "204"


class SampleResult(BaseModel):
    """
    Outcome of one sampling call, as handed back to the host.

    `start_time` / `end_time` are epoch seconds; `elapsed_ms` is measured on
    the monotonic clock between `sample_start()` and `sample_end()`.
    """

    label: str
    success: bool = False
    response_code: str = ResponseCode.GENERIC.value
    response_message: str = ""
    response_headers: str = ""
    response_data: str = ""
    sampler_data: str = ""
    data_type: str = "text"
    outcome: Optional[OutcomeKind] = None
    stop_thread: bool = False
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    _start_counter: Optional[float] = PrivateAttr(default=None)
    _end_counter: Optional[float] = PrivateAttr(default=None)

    # ---------- Timing ----------

    def sample_start(self) -> None:
        self.start_time = time.time()
        self._start_counter = time.perf_counter()

    def sample_end(self) -> None:
        if self._start_counter is None:
            return
        self.end_time = time.time()
        self._end_counter = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        if self._start_counter is None or self._end_counter is None:
            return 0.0
        return (self._end_counter - self._start_counter) * 1000.0

    # ---------- Response ----------

    def set_response_ok(self, message: str = "OK") -> None:
        self.success = True
        self.response_code = ResponseCode.OK.value
        self.response_message = message

    def set_response(self, code: ResponseCode, message: str, success: bool = False) -> None:
        self.success = success
        self.response_code = code.value
        self.response_message = message

    def to_dict(self) -> dict:
        return {**self.model_dump(mode="json"), "elapsed_ms": self.elapsed_ms}
