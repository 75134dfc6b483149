# rubric.py

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class RubricItem:
    id: str
    category: str
    task: str
    max_points: float = 1.0
    is_bonus: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Rubric item id must not be empty")
        if self.max_points <= 0:
            raise ValueError(
                f"Rubric item {self.id!r} must have max_points > 0 (got {self.max_points})"
            )

    @property
    def series(self) -> str:
        """Series prefix of the category, e.g. ``"S1"`` for ``"S1: Foundation | Image"``."""
        head = self.category.split("|")[0].strip()
        return head.split(":")[0].strip() or "Misc"


class Rubric:
    """Ordered, id-unique set of checklist items.

    A rubric is replaced as a whole; ``with_max_points`` returns a new rubric
    instead of editing this one.
    """

    def __init__(self, items: Sequence[RubricItem]) -> None:
        self._items: tuple[RubricItem, ...] = tuple(items)
        self._by_id: Dict[str, RubricItem] = {}
        for item in self._items:
            if item.id in self._by_id:
                raise ValueError(f"Duplicate rubric item id: {item.id}")
            self._by_id[item.id] = item

    def __iter__(self) -> Iterator[RubricItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Rubric):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Rubric({len(self._items)} items)"

    @property
    def items(self) -> List[RubricItem]:
        return list(self._items)

    def get(self, item_id: str) -> Optional[RubricItem]:
        return self._by_id.get(item_id)

    def lookup(self, item_id: str) -> Optional[float]:
        """Return the max points for ``item_id`` or ``None`` if it is not in the rubric."""
        item = self._by_id.get(item_id)
        return item.max_points if item is not None else None

    def series_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self._items:
            counts[item.series] = counts.get(item.series, 0) + 1
        return counts

    def group_by_series(self) -> Dict[str, List[RubricItem]]:
        groups: Dict[str, List[RubricItem]] = {}
        for item in self._items:
            groups.setdefault(item.series, []).append(item)
        return groups

    def with_max_points(self, updates: Mapping[str, float]) -> "Rubric":
        unknown = sorted(set(updates) - set(self._by_id))
        if unknown:
            raise KeyError(f"Unknown rubric item ids: {', '.join(unknown)}")
        return Rubric(
            [
                replace(item, max_points=float(updates[item.id])) if item.id in updates else item
                for item in self._items
            ]
        )


def _series(prefix: str, label: str, entries: Sequence[tuple]) -> List[RubricItem]:
    items: List[RubricItem] = []
    for idx, entry in enumerate(entries, start=1):
        subcategory, task, max_points = entry[:3]
        is_bonus = len(entry) > 3 and bool(entry[3])
        items.append(
            RubricItem(
                id=f"{prefix.lower()}-{idx}",
                category=f"{prefix}: {label} | {subcategory}",
                task=task,
                max_points=max_points,
                is_bonus=is_bonus,
            )
        )
    return items


# Default retail demo audit checklist. Ids follow the s{series}-{index}
# scheme that the bulk import layout fills.
DEFAULT_RUBRIC = Rubric(
    _series(
        "S1",
        "Foundation",
        [
            ("Professional Image", "Makeup (Women), Facial Hair (Men)", 1),
            ("Professional Image", "Smell", 1),
            ("Professional Image", "Hair", 2),
            ("Professional Image", "Nails", 1),
            ("Professional Image", "Uniform", 2),
            ("Professional Image", "Appropriate Accessories", 1),
            ("Professional Image", "Self-introduce to Shopper", 1),
            ("Professional Image", "Welcome shoppers, greetings", 1),
            ("Professional Image", "Engaging the shopper", 2),
            ("Retail Excellence", "Observe: Store Cleanliness", 1),
            ("Retail Excellence", "Observe: Retail machine display", 1),
            ("Retail Excellence", "Observe: Retail tools & accessories", 1),
            ("Retail Excellence", "Observe: Debris readiness", 1),
            ("Retail Excellence", "Demo: Machine/Tools organization", 1),
            ("Retail Excellence", "Reset: Store cleanliness", 1),
            ("Retail Excellence", "Reset: Retail machine reset", 1),
            ("Retail Excellence", "Reset: Retail tools & accessories", 1),
        ],
    )
    + _series(
        "S2",
        "Engage",
        [
            ("Building Rapport", "Customer observations: Giving compliments", 1),
            ("Confidence", "Body language: Store behaviour", 1),
            ("Confidence", "Body language: Arms & feet", 1),
            ("Confidence", "Body posture: Stage blocking", 1),
            ("Confidence", "Body posture: Confidence & enthusiasm", 2),
            ("Confidence", "Facial expression: Appropriate facial expression", 1),
            ("Confidence", "Facial expression: Appropriate eye contact", 1),
            ("Confidence", "Versatility with different shopper types", 4),
            ("Confidence", "Voice expression: volume and tone", 1),
            ("Confidence", "Voice expression: vocal delivery", 1),
            ("Questioning Skills", "Elicit questioning (e.g. How big is your home?)", 4),
            ("Questioning Skills", "Elaboration questions (open ended questions)", 2),
        ],
    )
    + _series(
        "S3",
        "Excite",
        [
            ("Reflecting Skills", "Paraphrasing", 4),
            ("Demo Initiation", "Demo Initiation", 2),
            ("Demo Initiation", "Demo plinth usage", 1),
            ("Demo Skills", "Product Demo 1: Technique", 5),
            ("Demo Skills", "Product Demo 2: Technique", 5),
            ("Bonus Metrics", "Bonus: One more demo", 5, True),
            ("Bonus Metrics", "Bonus: Explain difference with competitor products", 1, True),
            ("Maintenance", "Ease of maintenance (2,1,0)", 2),
            ("Maintenance", "Companion App (1,0)", 1),
        ],
    )
    + _series(
        "S4",
        "Explain",
        [
            ("Storytelling skills", "Narrative: Captivating story", 2),
            ("Storytelling skills", "Talk about Social media (Bonus)", 1, True),
            ("Storytelling skills", "Relate and interact with the Shopper", 2),
            ("Storytelling skills", "Share personal stories and build connections", 2),
            ("Storytelling skills", "Rediscovery: Layman terms to explain technology", 6),
            ("Storytelling skills", "Eagerness to relate story to Shopper", 2),
            ("Active listening skills", "Attentiveness", 2),
            ("Active listening skills", "Listening", 2),
            ("Active listening skills", "Acknowledgement", 2),
        ],
    )
    + _series(
        "S5",
        "Execute",
        [
            ("Negotiation Skills", "Counter objection: Displays confidence", 2),
            ("Negotiation Skills", "Counter objection: Offer alternative solutions", 3),
            ("Negotiation Skills", "Positivity: Demonstrate positivity", 4),
            ("Negotiation Skills", "Convincing: Demonstration ability to relate", 3),
            ("Negotiation Skills", "Sales initiation: Confidence & creativity", 2),
            ("Negotiation Skills", "Attempt to upsell", 1),
            ("Negotiation Skills", "Cross category initiation", 1),
            ("Negotiation Skills", "Warranty and after-sales service", 2),
            ("Negotiation Skills", "Shopper downloads app (Bonus)", 1, True),
            ("Follow-up: Purchase", "Initiate Warranty Registration", 1),
            ("Follow-up: Purchase", "Invitation to revisit: Look for me or my colleagues", 0.5),
            ("Follow-up: Purchase", "Personalize Service", 0.5),
            ("Follow-up: Purchase", "Offer assistance to Shopper (Bonus)", 1, True),
            ("Follow-up: Non-purchase", "Future prospecting", 1),
            ("Follow-up: Non-purchase", "Successful data collection (Bonus)", 1, True),
            ("Follow-up: Non-purchase", "Invitation to revisit", 1),
        ],
    )
)
