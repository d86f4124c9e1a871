"""Configuration values threaded through the auto-provisioning pipeline."""

from pydantic import BaseModel, ConfigDict, Field

from kitchenops.domain.cooking import TaskPriority


class Portion(BaseModel):
    """Per-guest quantity in a unit."""

    model_config = ConfigDict(frozen=True)

    quantity: float = Field(..., gt=0)
    unit: str


class KeywordPortion(BaseModel):
    """Portion applied when a dish name in ``category`` contains any keyword."""

    model_config = ConfigDict(frozen=True)

    category: str
    keywords: tuple[str, ...]
    portion: Portion


class KeywordCookingTime(BaseModel):
    """Cooking time applied when a dish name in ``category`` contains any keyword."""

    model_config = ConfigDict(frozen=True)

    category: str
    keywords: tuple[str, ...]
    minutes: int = Field(..., gt=0)


def _kg(quantity: float) -> Portion:
    return Portion(quantity=quantity, unit="kg")


class QuantityRules(BaseModel):
    """Portion, buffer, timing and priority tables used by the quantity calculator.

    Category keys are canonical kitchen categories; ``category_aliases`` maps
    menu planner names (lower case) onto them.
    """

    model_config = ConfigDict(frozen=True)

    category_aliases: dict[str, str] = Field(
        default_factory=lambda: {
            "starters": "Appetizers",
            "biryanis": "Main Course",
            "curries": "Main Course",
            "breads": "Breads",
            "desserts": "Desserts",
            "beverages": "Beverages",
        }
    )
    # Planner categories that already say what kind of main course a dish is
    alias_portions: dict[str, Portion] = Field(
        default_factory=lambda: {"biryanis": _kg(0.25), "curries": _kg(0.2)}
    )
    keyword_portions: tuple[KeywordPortion, ...] = Field(
        default_factory=lambda: (
            KeywordPortion(category="Main Course", keywords=("biryani",), portion=_kg(0.25)),
            KeywordPortion(category="Appetizers", keywords=("chicken", "mutton", "prawn"), portion=_kg(0.15)),
        )
    )
    category_portions: dict[str, Portion] = Field(
        default_factory=lambda: {
            "Appetizers": _kg(0.1),
            "Main Course": _kg(0.2),
            "Breads": Portion(quantity=2, unit="pieces"),
            "Desserts": _kg(0.1),
            "Beverages": Portion(quantity=0.2, unit="liters"),
        }
    )
    fallback_portion: Portion = Field(default_factory=lambda: _kg(0.1))

    buffer_percentages: dict[str, float] = Field(
        default_factory=lambda: {
            "Appetizers": 15,
            "Main Course": 10,
            "Breads": 20,
            "Desserts": 10,
            "Beverages": 15,
        }
    )
    default_buffer_percentage: float = Field(default=10.0, ge=0, le=50)

    keyword_cooking_times: tuple[KeywordCookingTime, ...] = Field(
        default_factory=lambda: (
            KeywordCookingTime(category="Main Course", keywords=("biryani", "rice"), minutes=90),
        )
    )
    cooking_times: dict[str, int] = Field(
        default_factory=lambda: {
            "Appetizers": 30,
            "Main Course": 60,
            "Breads": 20,
            "Desserts": 45,
            "Beverages": 15,
        }
    )
    default_cooking_time: int = 45

    priorities: dict[str, TaskPriority] = Field(
        default_factory=lambda: {
            "Main Course": TaskPriority.HIGH,
            "Desserts": TaskPriority.LOW,
            "Beverages": TaskPriority.LOW,
        }
    )
    default_priority: TaskPriority = TaskPriority.NORMAL


class ProvisioningConfig(BaseModel):
    """Switches and rules for one provisioning run."""

    model_config = ConfigDict(frozen=True)

    auto_create_indents: bool = True
    auto_create_cooking_tasks: bool = False
    rules: QuantityRules = Field(default_factory=QuantityRules)
