"""Kind registry, built explicitly at process startup and passed to consumers."""

from typing import Any, Dict, Mapping, Type

from pydantic import ValidationError

from quotapool.api.claim import Claim
from quotapool.api.meta import Resource
from quotapool.api.namespace import Namespace, ResourceQuota
from quotapool.api.pool import Pool
from quotapool.errors import InvalidObjectError


class UnknownKindError(InvalidObjectError):
    """Raised when an object's kind has not been registered."""
    pass


class Scheme:
    """Maps ``kind`` strings to the models that decode them."""

    def __init__(self):
        self._kinds: Dict[str, Type[Resource]] = {}

    def register(self, kind: str, model: Type[Resource]) -> None:
        existing = self._kinds.get(kind)
        if existing is not None and existing is not model:
            raise ValueError(f"kind {kind} already registered to {existing.__name__}")
        self._kinds[kind] = model

    def model_for(self, kind: str) -> Type[Resource]:
        try:
            return self._kinds[kind]
        except KeyError:
            raise UnknownKindError(f"unknown kind: {kind}") from None

    def kind_of(self, obj: Resource) -> str:
        for kind, model in self._kinds.items():
            if isinstance(obj, model):
                return kind
        raise UnknownKindError(f"unregistered type: {type(obj).__name__}")

    def is_namespaced(self, kind: str) -> bool:
        return self.model_for(kind).namespaced

    @property
    def kinds(self) -> Dict[str, Type[Resource]]:
        return dict(self._kinds)

    def decode(self, data: Mapping[str, Any]) -> Resource:
        """Build a model from a plain mapping carrying a ``kind`` field."""
        kind = data.get("kind")
        if not kind:
            raise InvalidObjectError("object has no kind")
        model = self.model_for(kind)
        try:
            return model.model_validate(dict(data))
        except ValidationError as e:
            raise InvalidObjectError(f"invalid {kind}: {e}") from e

    def encode(self, obj: Resource) -> Dict[str, Any]:
        data = obj.to_dict()
        data["kind"] = self.kind_of(obj)
        return data


def build_scheme() -> Scheme:
    """The scheme with every kind the engine persists."""
    scheme = Scheme()
    scheme.register(Pool.model_fields["kind"].default, Pool)
    scheme.register(Claim.model_fields["kind"].default, Claim)
    scheme.register(Namespace.model_fields["kind"].default, Namespace)
    scheme.register(ResourceQuota.model_fields["kind"].default, ResourceQuota)
    return scheme
