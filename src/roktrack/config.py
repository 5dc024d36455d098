"""Roktrack configuration - conf.toml, env vars, and CLI overrides."""

from __future__ import annotations

import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from roktrack.errors import ConfigError
from roktrack.utils.paths import CONF_FILE, RoktrackPaths

logger = logging.getLogger(__name__)


# Load .env from the working directory and the repo root so ROKTRACK_* overrides are set
def _load_dotenv() -> None:
    # config.py lives in src/roktrack/ -> 2 levels up = repo root
    base = Path(__file__).resolve().parent.parent.parent
    load_dotenv(Path.cwd() / ".env")
    load_dotenv(base / ".env")

_load_dotenv()


def _env(key: str, default: str) -> str:
    """Read env var with default."""
    return os.environ.get(key, default)


MODE_NAMES = ("fill", "oneway", "climb", "around", "monitor_person", "monitor_animal", "round_trip", "follow_person")
SPEAKER_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

# Written to <data>/conf.toml on first start.
DEFAULT_CONFIG = """\
[system]
persistent_dir = '/data/roktrack' # Directory for persistent data
ephemeral_dir = '/run/user/1000/roktrack' # Directory for ephemeral data
log_speaker_level = 'INFO' # Spoken log level ('DEBUG', 'INFO', 'WARN', 'ERROR')
log_level = 'INFO' # Log file level
lang = 'ja' # Audio language ('ja', 'en')
identifier = 0 # Peer id 1-249, 0 = pick at random
appearance = 0 # Appearance byte broadcast to peers

[drive]
default_state = 'on' # 'on' or 'off'
mode = 'fill' # 'fill', 'oneway', 'monitor_person', 'monitor_animal', 'round_trip', 'follow_person'
minimum_pylon_height = 0 # Minimum pylon height for operations
turn_adj = 1.0 # Motion duration multiplier
motor_driver = 'ZK_5AD' # 'ZK_5AD', 'IRF3205'

[camera]
video_idx = 0 # OpenCV capture index
grab_times = 3 # Frames grabbed per capture to flush the buffer
width = 1280
height = 720

[pin]
left_pin1 = 22 # Left motor control pin 1 (DIGITAL)
left_pin2 = 23 # Left motor control pin 2 (PWM)
right_pin1 = 24 # Right motor control pin 1 (DIGITAL)
right_pin2 = 25 # Right motor control pin 2 (PWM)
bumper_pin = 26 # Bumper switch pin
work1_pin = 14 # Work motor control pin 1 (for relay, use 17)
work2_pin = 18 # Work motor control pin 2
work_ctrl_positive = false # Work motor control polarity (for relay, set to true)

[pwm]
pwm_power_left = 1.0 # Duty cycle 0.0-1.0
pwm_power_right = 1.0

[vision]
detector = 'yolov8onnx'
ocr = true # Read digits printed on markers
pylon_320_model = 'asset/model/roktrack_yolov8_nano_fixed_320_320.onnx'
pylon_640_model = 'asset/model/roktrack_yolov8_nano_fixed_640_640.onnx'
ocr_model = 'asset/model/digit_yolov8_nano_fixed_96_96.onnx'
animal_320_model = '' # Empty = animal monitoring unavailable
animal_640_model = ''

[notification]
endpoint = 'https://notify-api.line.me/api/notify'
token = 'YOUR-NOTIFY-TOKEN'

[detectthreshold]
pylon = 0.5
person = 0.7
animal = 0.5
roktrack = 0.5
"""


@dataclass(frozen=True)
class SystemConfig:
    persistent_dir: str = "/data/roktrack"
    ephemeral_dir: str = "/run/user/1000/roktrack"
    # Speech is played only for cues at or above this level
    log_speaker_level: str = "INFO"
    log_level: str = "INFO"
    lang: str = "ja"
    # 0 = choose a random id in [1, 249]
    identifier: int = 0
    appearance: int = 0


@dataclass(frozen=True)
class DriveConfig:
    default_state: str = "on"
    mode: str = "fill"
    minimum_pylon_height: int = 0
    # Multiplier on every motion duration (clock skew / battery sag)
    turn_adj: float = 1.0
    motor_driver: str = "ZK_5AD"


@dataclass(frozen=True)
class CameraConfig:
    video_idx: int = 0
    grab_times: int = 3
    width: int = 1280
    height: int = 720


@dataclass(frozen=True)
class PinConfig:
    left_pin1: int = 22
    left_pin2: int = 23
    right_pin1: int = 24
    right_pin2: int = 25
    bumper_pin: int = 26
    work1_pin: int = 14
    work2_pin: int = 18
    work_ctrl_positive: bool = False


@dataclass(frozen=True)
class PwmConfig:
    pwm_power_left: float = 1.0
    pwm_power_right: float = 1.0


@dataclass(frozen=True)
class VisionConfig:
    detector: str = "yolov8onnx"
    ocr: bool = True
    pylon_320_model: str = "asset/model/roktrack_yolov8_nano_fixed_320_320.onnx"
    pylon_640_model: str = "asset/model/roktrack_yolov8_nano_fixed_640_640.onnx"
    ocr_model: str = "asset/model/digit_yolov8_nano_fixed_96_96.onnx"
    animal_320_model: str = ""
    animal_640_model: str = ""

    @property
    def animal_available(self) -> bool:
        """Animal session needs both model sizes."""
        return bool(self.animal_320_model and self.animal_640_model)


@dataclass(frozen=True)
class NotificationConfig:
    endpoint: str = "https://notify-api.line.me/api/notify"
    token: str = ""


@dataclass(frozen=True)
class DetectThresholdConfig:
    pylon: float = 0.5
    person: float = 0.7
    animal: float = 0.5
    roktrack: float = 0.5


@dataclass(frozen=True)
class RoktrackConfig:
    """Configuration for the whole robot. Immutable after startup."""

    system: SystemConfig = field(default_factory=SystemConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    pin: PinConfig = field(default_factory=PinConfig)
    pwm: PwmConfig = field(default_factory=PwmConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    detectthreshold: DetectThresholdConfig = field(default_factory=DetectThresholdConfig)


@dataclass(frozen=True)
class RoktrackProperty:
    """Paths + config handed to every mode handler."""

    paths: RoktrackPaths
    conf: RoktrackConfig


def _coerce(value: Any, target: type, where: str) -> Any:
    """Convert a TOML scalar to the dataclass field type."""
    if target is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on", "0", "false", "no", "off"):
            return value.strip().lower() in ("1", "true", "yes", "on")
        raise ConfigError(f"{where}: expected bool, got {value!r}")
    if target is int:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ConfigError(f"{where}: expected int, got {value!r}")
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(f"{where}: expected int, got {value!r}") from e
    if target is float:
        if isinstance(value, bool):
            raise ConfigError(f"{where}: expected float, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{where}: expected float, got {value!r}") from e
    return str(value)


_FIELD_TYPES = {"bool": bool, "int": int, "float": float, "str": str}


def _build_section(cls: type, name: str, raw: dict[str, Any]) -> Any:
    """Build one section dataclass from its TOML table. Unknown keys are ignored with a warning."""
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    known = {f.name: f for f in dataclasses.fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        f = known.get(key)
        if f is None:
            logger.warning("Unknown config key [%s].%s ignored", name, key)
            continue
        # annotations are strings under `from __future__ import annotations`
        target = _FIELD_TYPES.get(str(f.type), str)
        kwargs[key] = _coerce(value, target, f"[{name}].{key}")
    return cls(**kwargs)


def _validate(conf: RoktrackConfig) -> None:
    if conf.drive.mode not in MODE_NAMES:
        raise ConfigError(f"[drive].mode: unknown mode {conf.drive.mode!r}")
    if conf.drive.default_state not in ("on", "off"):
        raise ConfigError(f"[drive].default_state must be 'on' or 'off', got {conf.drive.default_state!r}")
    if conf.drive.turn_adj <= 0:
        raise ConfigError("[drive].turn_adj must be positive")
    if conf.system.identifier != 0 and not 1 <= conf.system.identifier <= 249:
        raise ConfigError("[system].identifier must be 0 or in 1..249")
    if not 0 <= conf.system.appearance <= 255:
        raise ConfigError("[system].appearance must fit in one byte")
    if conf.system.log_speaker_level.upper() not in SPEAKER_LEVELS:
        raise ConfigError(f"[system].log_speaker_level must be one of {SPEAKER_LEVELS}")
    for side in ("pwm_power_left", "pwm_power_right"):
        if not 0.0 <= getattr(conf.pwm, side) <= 1.0:
            raise ConfigError(f"[pwm].{side} must be within 0.0-1.0")


def parse_config(text: str) -> RoktrackConfig:
    """Parse TOML text into a validated RoktrackConfig."""
    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML: {e}") from e
    sections = {f.name: f for f in dataclasses.fields(RoktrackConfig)}
    kwargs: dict[str, Any] = {}
    section_types = {
        "system": SystemConfig,
        "drive": DriveConfig,
        "camera": CameraConfig,
        "pin": PinConfig,
        "pwm": PwmConfig,
        "vision": VisionConfig,
        "notification": NotificationConfig,
        "detectthreshold": DetectThresholdConfig,
    }
    for name in sections:
        if name in raw:
            kwargs[name] = _build_section(section_types[name], name, raw[name])
    conf = RoktrackConfig(**kwargs)
    _validate(conf)
    return conf


def load_config(
    data_dir: str | Path,
    *,
    mode: str | None = None,
    default_state: str | None = None,
    log_level: str | None = None,
    ocr: bool | None = None,
    notify_token: str | None = None,
    turn_adj: float | None = None,
) -> RoktrackConfig:
    """Load <data_dir>/conf.toml, writing the default first if missing. CLI/args override env vars."""
    path = Path(data_dir) / CONF_FILE
    if not path.is_file():
        logger.info("No config at %s, writing default", path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(DEFAULT_CONFIG, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot write default config {path}: {e}") from e
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    conf = parse_config(text)

    def _str(k: str, d: str, override: str | None) -> str:
        return override if override is not None else _env(k, d)

    def _bool(k: str, d: bool, override: bool | None) -> bool:
        if override is not None:
            return override
        return _coerce(_env(k, str(d)), bool, k)

    def _float(k: str, d: float, override: float | None) -> float:
        if override is not None:
            return override
        return _coerce(_env(k, str(d)), float, k)

    conf = dataclasses.replace(
        conf,
        system=dataclasses.replace(
            conf.system, log_level=_str("ROKTRACK_LOG_LEVEL", conf.system.log_level, log_level)
        ),
        drive=dataclasses.replace(
            conf.drive,
            mode=_str("ROKTRACK_MODE", conf.drive.mode, mode),
            default_state=_str("ROKTRACK_DEFAULT_STATE", conf.drive.default_state, default_state),
            turn_adj=_float("ROKTRACK_TURN_ADJ", conf.drive.turn_adj, turn_adj),
        ),
        vision=dataclasses.replace(conf.vision, ocr=_bool("ROKTRACK_OCR", conf.vision.ocr, ocr)),
        notification=dataclasses.replace(
            conf.notification, token=_str("ROKTRACK_NOTIFY_TOKEN", conf.notification.token, notify_token)
        ),
    )
    _validate(conf)
    return conf
