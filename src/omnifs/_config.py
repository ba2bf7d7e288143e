"""Configuration model, immutable data containers describing backends."""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class BackendConfig:
    """Describes a backend instance.

    :param type: Backend type identifier (e.g. ``"memory"``, ``"sftp"``).
    :param options: Keyword arguments passed to the backend constructor.
    """

    type: str
    options: dict[str, object] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class RegistryConfig:
    """Top-level configuration container.

    :param backends: Mapping of backend names to their configs.
    """

    backends: dict[str, BackendConfig] = dataclasses.field(default_factory=dict)

    def validate(self) -> None:
        """Validate the backend entries.

        :raises ValueError: If a backend has an empty name or type.
        """
        for name, cfg in self.backends.items():
            if not name:
                raise ValueError("Backend names must not be empty")
            if not cfg.type:
                raise ValueError(f"Backend '{name}' has an empty type")

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> RegistryConfig:
        """Construct from a plain dict (e.g. parsed TOML/JSON).

        :param data: Dict with a ``backends`` key.
        """
        raw_backends = data.get("backends", {})
        if not isinstance(raw_backends, dict):
            msg = "Expected 'backends' to be a dict"
            raise TypeError(msg)

        backends: dict[str, BackendConfig] = {}
        for name, cfg in raw_backends.items():
            if not isinstance(cfg, dict):
                msg = f"Backend config for '{name}' must be a dict"
                raise TypeError(msg)
            backends[str(name)] = BackendConfig(
                type=str(cfg["type"]),
                options=dict(cfg.get("options", {})),
            )
        return cls(backends=backends)
