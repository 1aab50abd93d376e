"""Element selection from skip flags."""

from siteclone.models import Element, ElementSet


def select_elements(
    skip_database: bool = False, skip_code: bool = False, skip_files: bool = False
) -> ElementSet:
    """Build the set of elements to clone.

    Raises:
        EmptySelectionError: If all three elements are skipped
    """
    chosen = []
    if not skip_database:
        chosen.append(Element.DATABASE)
    if not skip_code:
        chosen.append(Element.CODE)
    if not skip_files:
        chosen.append(Element.FILES)
    return ElementSet(chosen)
