from .registry import (
    PERMISSIVE,
    CoercionResult,
    ColumnTypeRegistry,
    PermissiveType,
    TypeContract,
    build_registry,
    is_blank,
    load_plugins,
)
from .country import (
    CountryConversionError,
    convert_to_country_code,
    get_country_name,
    is_valid_country_input,
)

__all__ = [
    'PERMISSIVE', 'CoercionResult', 'ColumnTypeRegistry', 'PermissiveType', 'TypeContract',
    'build_registry', 'is_blank', 'load_plugins',
    'CountryConversionError', 'convert_to_country_code', 'get_country_name', 'is_valid_country_input',
]
