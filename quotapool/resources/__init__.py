"""Resource accounting for quota pools."""

from quotapool.resources.quantity import (
    Quantity,
    QuantityFormat,
    QuantityParseError,
    parse_quantity,
)
from quotapool.resources.requirements import (
    ResourceList,
    parse_resource_list,
    add_resource_lists,
)

__all__ = [
    # Quantity
    "Quantity",
    "QuantityFormat",
    "QuantityParseError",
    "parse_quantity",

    # Resource lists
    "ResourceList",
    "parse_resource_list",
    "add_resource_lists",
]
