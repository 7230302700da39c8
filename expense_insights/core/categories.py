FOOD = "food"
TRAVEL = "travel"
BILLS = "bills"
ENTERTAINMENT = "entertainment"
OTHER = "other"

FIXED_CATEGORIES = [
    FOOD,
    TRAVEL,
    BILLS,
    ENTERTAINMENT,
    OTHER,
]


def category_label(name):
    if not name:
        return ""
    return name[0].upper() + name[1:]
