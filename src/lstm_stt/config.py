"""Model configuration for the LSTM transducer runner.

A ModelConfig is built once (from explicit paths, a model directory or the
environment) and owned by the model adapter for its entire lifetime.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from lstm_stt.constants import DEFAULT_NUM_THREADS, DEFAULT_PROVIDER, ENV_PREFIX, PROVIDERS
from lstm_stt.errors import ModelConfigError

ROLES: tuple[str, ...] = ("encoder", "decoder", "joiner")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class ModelConfig:
    """Paths and session options for an encoder/decoder/joiner triple.

    Attributes:
        encoder: Path to the encoder ONNX file.
        decoder: Path to the decoder ONNX file.
        joiner: Path to the joiner ONNX file.
        num_threads: Intra- and inter-op thread count, applied to every session.
        debug: Dump each model's metadata when it is loaded, through the
            lstm_stt.metadata logger at WARNING (visible on stderr even
            without logging configuration).
        provider: Execution provider name ("cpu", "cuda" or "coreml").
    """

    encoder: Path
    decoder: Path
    joiner: Path
    num_threads: int = DEFAULT_NUM_THREADS
    debug: bool = False
    provider: str = DEFAULT_PROVIDER

    def __post_init__(self):
        for role in ROLES:
            object.__setattr__(self, role, Path(getattr(self, role)))

        if isinstance(self.num_threads, bool) or not isinstance(self.num_threads, int):
            raise ModelConfigError(f"num_threads must be an integer, got {self.num_threads!r}")
        if self.num_threads <= 0:
            raise ModelConfigError(f"num_threads must be positive, got {self.num_threads}")
        if self.provider not in PROVIDERS:
            raise ModelConfigError(
                f"unknown provider {self.provider!r}, expected one of {sorted(PROVIDERS)}"
            )

    def model_path(self, role: str) -> Path:
        """Return the file for "encoder", "decoder" or "joiner"."""
        if role not in ROLES:
            raise ValueError(f"unknown model role: {role}")
        return getattr(self, role)

    @classmethod
    def from_dir(
        cls,
        model_dir: str | Path,
        prefer_int8: bool = False,
        **kwargs,
    ) -> "ModelConfig":
        """Discover the three model files in a released model directory.

        Released models name their files like ``encoder-epoch-99-avg-1.onnx``
        and often ship an ``.int8.onnx`` twin next to the float model.

        Args:
            model_dir: Directory containing encoder*, decoder* and joiner* files.
            prefer_int8: Pick the int8 variant when both are present.
            **kwargs: Remaining ModelConfig fields (num_threads, debug, provider).

        Returns:
            A validated ModelConfig.

        Raises:
            ModelConfigError: If the directory is missing, or a role has no
                file or more than one candidate.
        """
        model_dir = Path(model_dir)
        if not model_dir.is_dir():
            raise ModelConfigError(f"model directory not found: {model_dir}", path=model_dir)

        paths = {}
        for role in ROLES:
            paths[role] = _find_model_file(model_dir, role, prefer_int8)

        return cls(**paths, **kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ModelConfig":
        """Build a config from LSTM_STT_* environment variables.

        LSTM_STT_ENCODER, LSTM_STT_DECODER and LSTM_STT_JOINER are required;
        LSTM_STT_NUM_THREADS, LSTM_STT_DEBUG and LSTM_STT_PROVIDER are optional.
        """
        env = os.environ if environ is None else environ

        paths = {}
        for role in ROLES:
            name = f"{ENV_PREFIX}{role.upper()}"
            value = env.get(name)
            if not value:
                raise ModelConfigError(f"environment variable {name} is not set")
            paths[role] = Path(value)

        num_threads_raw = env.get(f"{ENV_PREFIX}NUM_THREADS", str(DEFAULT_NUM_THREADS))
        try:
            num_threads = int(num_threads_raw)
        except ValueError:
            raise ModelConfigError(
                f"{ENV_PREFIX}NUM_THREADS must be an integer, got {num_threads_raw!r}"
            ) from None

        return cls(
            **paths,
            num_threads=num_threads,
            debug=_parse_bool(f"{ENV_PREFIX}DEBUG", env.get(f"{ENV_PREFIX}DEBUG", "")),
            provider=env.get(f"{ENV_PREFIX}PROVIDER", DEFAULT_PROVIDER),
        )


def _find_model_file(model_dir: Path, role: str, prefer_int8: bool) -> Path:
    candidates = sorted(model_dir.glob(f"{role}*.onnx"))
    if not candidates:
        raise ModelConfigError(f"no {role}*.onnx file in {model_dir}", path=model_dir)

    int8 = [p for p in candidates if p.name.endswith(".int8.onnx")]
    plain = [p for p in candidates if not p.name.endswith(".int8.onnx")]
    preferred = (int8 or plain) if prefer_int8 else (plain or int8)

    if len(preferred) > 1:
        names = ", ".join(p.name for p in preferred)
        raise ModelConfigError(f"ambiguous {role} files in {model_dir}: {names}", path=model_dir)
    return preferred[0]


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ModelConfigError(f"{name} must be a boolean, got {value!r}")
