"""Built-in spending categories, seeded once when a document is created."""

from finfree.models.budget import CategoryDefinition
from finfree.models.transactions import ExpenseType


NEED = ExpenseType.NEED
WANT = ExpenseType.WANT

DEFAULT_CATEGORIES: tuple[CategoryDefinition, ...] = (
    # Housing & utilities
    CategoryDefinition(id="RENT", name="Rent", icon="Home", default_type=NEED),
    CategoryDefinition(id="ELECTRIC", name="Electric", icon="Zap", default_type=NEED),
    CategoryDefinition(id="GAS", name="Gas", icon="Flame", default_type=NEED),
    CategoryDefinition(id="WATER", name="Water", icon="Droplets", default_type=NEED),
    CategoryDefinition(id="INTERNET", name="Internet", icon="Wifi", default_type=NEED),
    CategoryDefinition(id="PHONE", name="Phone", icon="Phone", default_type=NEED),
    # Essential living
    CategoryDefinition(id="FOOD", name="Food", icon="Utensils", default_type=NEED),
    CategoryDefinition(id="TRANSPORT", name="Transport", icon="Bus", default_type=NEED),
    CategoryDefinition(id="CAR", name="Car", icon="Car", default_type=NEED),
    CategoryDefinition(id="TOILETRIES", name="Toiletries", icon="ShoppingBag", default_type=NEED),
    CategoryDefinition(id="MEDICAL", name="Medical", icon="Stethoscope", default_type=NEED),
    CategoryDefinition(id="INSURANCE", name="Insurance", icon="Shield", default_type=NEED),
    CategoryDefinition(id="HOUSEHOLD", name="Household", icon="Wrench", default_type=NEED),
    # Lifestyle
    CategoryDefinition(id="EAT OUT", name="Eat Out", icon="Coffee", default_type=WANT),
    CategoryDefinition(id="SUBSCRIPTIONS", name="Subscriptions", icon="Repeat", default_type=WANT),
    CategoryDefinition(id="CLOTHING", name="Clothing", icon="Shirt", default_type=WANT),
    CategoryDefinition(id="GIFTS", name="Gifts", icon="Gift", default_type=WANT),
    CategoryDefinition(id="WANT", name="Want", icon="Smile", default_type=WANT),
    # Financial
    CategoryDefinition(id="SAVE", name="Save", icon="PiggyBank", default_type=ExpenseType.SAVE),
    CategoryDefinition(id="DEBT", name="Debt", icon="CreditCard", default_type=ExpenseType.DEBT),
    CategoryDefinition(id="FEES", name="Fees", icon="Briefcase", default_type=NEED),
)

BUILTIN_CATEGORY_IDS = frozenset(c.id for c in DEFAULT_CATEGORIES)

# What an unresolvable category degrades to
UNCATEGORIZED = CategoryDefinition(
    id="UNCATEGORIZED",
    name="Uncategorized",
    icon="HelpCircle",
    default_type=WANT,
)

FEES_CATEGORY_ID = "FEES"

AVAILABLE_ICONS = (
    "Home", "Zap", "Flame", "Droplets", "Phone",
    "Utensils", "Bus", "ShoppingBag", "Smile", "PiggyBank",
    "CreditCard", "Coffee", "Gift", "Heart", "Briefcase",
    "Gamepad2", "Shirt", "Dumbbell", "Stethoscope", "GraduationCap",
    "Wifi", "Shield", "Repeat", "Wrench", "Car",
)
