"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (HTTP/keypad) lean config de forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "keypad-sca"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "keypad-sca"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "keypad-sca"
    return Path.home() / ".config" / "keypad-sca"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# keypad-sca user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Las credenciales viajan como `SecretStr` y nunca se imprimen por accidente.
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYPAD_SCA_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    secure_api_url: str = Field(
        default="https://m.ing.fr/secure/api-v1/",
        min_length=8,
        description="Base URL de la API autenticada (login, SCA, cuentas).",
    )
    save_invest_api_url: str = Field(
        default="https://m.ing.fr/saveinvestapi/v1/",
        min_length=8,
        description="Base URL del servicio secundario (seguros de vida).",
    )
    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    user_agent: str = Field(
        default="keypad-sca/0.1 (+https://local)",
        min_length=1,
        description="User-Agent enviado al banco.",
    )

    customer_id: str | None = Field(
        default=None,
        description="Identificador de cliente (CIF), p.ej. 0123456789.",
    )
    birthdate: str | None = Field(
        default=None,
        pattern=r"^\d{8}$",
        description="Fecha de nacimiento en formato DDMMYYYY.",
    )
    password: SecretStr | None = Field(
        default=None,
        description="Código secreto numérico tecleado en el keypad virtual.",
    )

    templates_dir: Path | None = Field(
        default=None,
        description="Directorio con los glifos de referencia 0.png .. 9.png.",
    )
    keypad_canvas_width: int = Field(
        default=3800,
        gt=0,
        description="Ancho de canvas declarado al pedir el keypad.",
    )
    keypad_canvas_height: int = Field(
        default=1520,
        gt=0,
        description="Alto de canvas declarado al pedir el keypad.",
    )
    pixel_diff_threshold: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Tolerancia por canal (0..1) para considerar dos píxeles distintos.",
    )

    log_level: str = Field(
        default="INFO",
        description="Nivel de logging (DEBUG, INFO, WARNING...).",
    )
