from dataclasses import dataclass
from typing import Optional

from khetismart.cache.staleness import ResourceClass

DEFAULT_NAMESPACE = "khetismart_"

_SLOT_NAMES = {
    ResourceClass.MARKET: "market_prices",
    ResourceClass.HISTORY: "history_",
    ResourceClass.PREDICTION: "prediction_",
}


def normalize_crop_name(name: str) -> str:
    """Trim, collapse inner whitespace and casefold so 'Tomato ' and 'tomato' share a slot."""
    return " ".join(name.split()).casefold()


@dataclass(frozen=True)
class ResourceKey:
    """Resource class plus optional crop-name discriminator."""

    resource_class: ResourceClass
    discriminator: Optional[str] = None

    @classmethod
    def market(cls) -> "ResourceKey":
        return cls(ResourceClass.MARKET)

    @classmethod
    def for_crop(
        cls, resource_class: ResourceClass, crop_name: str, normalize: bool = True
    ) -> "ResourceKey":
        if resource_class is ResourceClass.MARKET:
            raise ValueError("The market snapshot is not keyed by crop name.")
        discriminator = normalize_crop_name(crop_name) if normalize else crop_name
        if not discriminator.strip():
            raise ValueError("Crop name cannot be empty.")
        return cls(resource_class, discriminator)

    def storage_key(self, namespace: str = DEFAULT_NAMESPACE) -> str:
        slot = _SLOT_NAMES[self.resource_class]
        if self.discriminator is None:
            return f"{namespace}{slot}"
        return f"{namespace}{slot}{self.discriminator}"
