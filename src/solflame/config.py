"""
Flame graph configuration management.
Loads and saves solflame settings from the project's YAML config file.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_FILE = "solflame.config.yaml"


@dataclass
class FlameConfig:
    """Settings shared by the solflame commands."""

    rpc_url: str = "http://localhost:8545"
    output_dir: str = "."
    title: Optional[str] = None
    colors: str = "hot"
    flame_chart: bool = True
    relabel_gas: bool = True
    opcode_frames: bool = False
    contracts_file: Optional[str] = None
    lookup_signatures: bool = False

    def output_path(self, label: str, output: Optional[str] = None) -> Path:
        """Where to write the SVG for ``label`` when no explicit output is given."""
        if output:
            return Path(output)
        return Path(self.output_dir) / f"flamegraph-{label}.svg"

    def update(self, overrides: Dict[str, Any]):
        """Apply overrides, ignoring keys set to None."""
        for key, value in overrides.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)

    @classmethod
    def from_config_file(cls, config_file: str = DEFAULT_CONFIG_FILE) -> "FlameConfig":
        """Load configuration from a solflame config file."""
        if not Path(config_file).exists():
            # Return default config if file doesn't exist
            return cls()

        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        flame_config = config_data.get('flamegraph', {}) or {}
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in flame_config.items() if key in known}
        if 'rpc_url' in config_data and 'rpc_url' not in values:
            values['rpc_url'] = config_data['rpc_url']
        return cls(**values)

    def save_to_config_file(self, config_file: str = DEFAULT_CONFIG_FILE):
        """Save configuration to a solflame config file, keeping other sections."""
        config_data = {}
        if Path(config_file).exists():
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}

        # Ensure structure exists
        if 'flamegraph' not in config_data or config_data['flamegraph'] is None:
            config_data['flamegraph'] = {}

        config_data['flamegraph'].update({f.name: getattr(self, f.name) for f in fields(self)})

        with open(config_file, 'w') as f:
            yaml.dump(config_data, f, default_flow_style=False, sort_keys=False)
