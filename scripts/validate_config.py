#!/usr/bin/env python3
"""Configuration validation script.

Validates the merged configuration of every shift defined in a
``shifts.yaml`` (default: ``config/shifts.yaml`` in the project root).

Usage:
    python scripts/validate_config.py [CONFIG_DIR]
"""

import sys
from pathlib import Path
from typing import List, Optional

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from shift_app.config.loader import ConfigLoader
from shift_app.config.validation import ConfigValidator, ValidationError
from shift_app.errors import ConfigurationError


def validate_shift_config(loader: ConfigLoader, shift_name: Optional[str]) -> List[ValidationError]:
    """Validate configuration for a specific shift (or the file defaults)."""
    config = loader.merge_config(shift_name)
    return ConfigValidator.validate_config(config)


def main():
    """Main validation function."""
    config_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else project_root / "config"
    print(f"🔍 Validating shift configuration in {config_dir}...")

    loader = ConfigLoader.create(config_dir)

    try:
        defaults_errors = validate_shift_config(loader, None)
    except ConfigurationError as e:
        print(f"❌ Cannot load configuration: {e}")
        sys.exit(1)

    if defaults_errors:
        print(f"❌ File defaults have {len(defaults_errors)} validation errors:")
        for error in defaults_errors:
            print(f"  • {error.field}: {error.message} (value: {error.value})")
        sys.exit(1)

    shift_names = [window.name for window in loader.load().shifts.windows]
    all_valid = True

    for shift_name in shift_names:
        print(f"\n🕒 Validating shift {shift_name}...")

        errors = validate_shift_config(loader, shift_name)
        if errors:
            print(f"❌ Found {len(errors)} validation errors:")
            for error in errors:
                print(f"  • {error.field}: {error.message} (value: {error.value})")
            all_valid = False
        else:
            print(f"✅ {shift_name} configuration is valid")

    # Sections for shifts that have no window are never used
    file_shifts = (loader._load_file().get("shifts") or {}).keys()
    unknown = sorted(set(file_shifts) - set(shift_names))
    if unknown:
        print(f"\n⚠️  shifts.yaml configures unknown shifts: {', '.join(unknown)}")
        all_valid = False

    if all_valid:
        print("\n🎉 All configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
