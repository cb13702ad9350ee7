from __future__ import annotations

"""
Known lens types offered by the storefront.

The catalog is an immutable value: it is built once (``DEFAULT_LENS_CATALOG``)
and handed to the extractor and the validator explicitly.  Sites with a
different lens range construct their own ``LensCatalog`` instead of
patching this one.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class LensTypeInfo:
    key: str
    name: str
    blue_light_protection: str
    color_enhancement: str
    best_for: Tuple[str, ...] = ()
    characteristics: Tuple[str, ...] = ()
    # None where the answer depends on the base lens
    has_uv_protection: Optional[bool] = None
    extra: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default=())

    def extra_values(self, name: str) -> Tuple[str, ...]:
        return dict(self.extra).get(name, ())


class LensCatalog:
    """Read-only lookup of lens types by key."""

    def __init__(self, lens_types: Iterable[LensTypeInfo]):
        self._by_key: Mapping[str, LensTypeInfo] = MappingProxyType(
            {info.key: info for info in lens_types}
        )

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._by_key)

    def get(self, key: str) -> Optional[LensTypeInfo]:
        return self._by_key.get(key)

    def keys(self) -> List[str]:
        return list(self._by_key)


DEFAULT_LENS_CATALOG = LensCatalog(
    [
        LensTypeInfo(
            key="Amber",
            name="Amber/Crystalline",
            blue_light_protection="65%",
            color_enhancement="High contrast, warm tint",
            best_for=("Gaming", "Low light environments", "Evening computer use"),
            characteristics=("Enhanced contrast", "Reduced eye strain", "Improved sleep patterns"),
            has_uv_protection=False,
        ),
        LensTypeInfo(
            key="Clear",
            name="Clear/Liquet",
            blue_light_protection="35%",
            color_enhancement="Natural color accuracy",
            best_for=("Office work", "Professional environments", "All-day computer use"),
            characteristics=("Minimal color distortion", "Subtle protection", "Professional appearance"),
            has_uv_protection=False,
        ),
        LensTypeInfo(
            key="Dark Amber",
            name="Dark Amber/Umber",
            blue_light_protection="80%",
            color_enhancement="Maximum contrast enhancement",
            best_for=("Severe light sensitivity", "Post-surgery recovery", "Maximum protection"),
            characteristics=("Highest protection level", "Significant color shift", "Medical grade filtering"),
            has_uv_protection=False,
        ),
        LensTypeInfo(
            key="Prescription",
            name="Prescription (Rx)",
            blue_light_protection="Varies by base lens",
            color_enhancement="Based on selected lens type",
            best_for=("Vision correction needed", "Custom prescriptions", "Progressive lenses"),
            characteristics=(
                "Custom vision correction",
                "Available in multiple lens types",
                "Single vision or progressive",
            ),
            extra=(
                ("prescription_types", ("Single Vision", "Progressive", "Bifocal", "Reading")),
                ("available_lens_bases", ("Clear", "Amber", "Sunglass tints")),
                ("typical_cost_addition", ("$150-$300",)),
            ),
        ),
        LensTypeInfo(
            key="Sunglass",
            name="Sunglass Tints",
            blue_light_protection="85-98%",
            color_enhancement="Various tint options",
            best_for=("Outdoor use", "Bright environments", "UV protection"),
            characteristics=("UV protection", "Glare reduction", "Multiple tint options"),
            has_uv_protection=True,
            extra=(("tint_options", ("Grey", "Brown", "Green", "Gradient")),),
        ),
        LensTypeInfo(
            key="Photochromic",
            name="Photochromic/Transitions",
            blue_light_protection="Variable (35-85%)",
            color_enhancement="Adaptive based on lighting",
            best_for=("Variable lighting", "Indoor/outdoor transitions", "All-day wear"),
            characteristics=("Automatically adjusts", "Light-responsive", "Convenience factor"),
            has_uv_protection=True,
        ),
    ]
)
