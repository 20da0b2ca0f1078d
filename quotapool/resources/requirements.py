"""Resource list helpers.

A resource list maps resource names (``cpu``, ``requests.memory``,
``limits.cpu``, ...) to :class:`Quantity` values.
"""

from typing import Any, Dict, Mapping, Optional

from quotapool.resources.quantity import Quantity


ResourceList = Dict[str, Quantity]


def parse_resource_list(values: Optional[Mapping[str, Any]]) -> ResourceList:
    """Parse a mapping of resource name to quantity-like values."""
    if not values:
        return {}
    return {str(name): Quantity.parse(amount) for name, amount in values.items()}


def add_resource_lists(left: Mapping[str, Quantity], right: Mapping[str, Quantity]) -> ResourceList:
    """Return the per-resource sum of two lists over the union of their keys."""
    result = dict(left)
    for name, amount in right.items():
        result[name] = result.get(name, Quantity.zero()) + amount
    return result


def resource_lists_equal(left: Mapping[str, Quantity], right: Mapping[str, Quantity]) -> bool:
    """Compare two lists by value; a missing key equals an explicit zero."""
    for name in set(left) | set(right):
        if left.get(name, Quantity.zero()) != right.get(name, Quantity.zero()):
            return False
    return True


def negative_resources(resources: Mapping[str, Quantity]) -> Dict[str, Quantity]:
    return {name: amount for name, amount in resources.items() if amount.sign() < 0}
