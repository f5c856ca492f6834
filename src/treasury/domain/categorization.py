"""Keyword based category inference for imported movements."""

from typing import Optional

from treasury.domain.deduplication import normalize_description

# First matching rule wins, so specific providers come before generic words.
CATEGORY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Suministros › Luz", ("luz", "endesa", "iberdrola", "electricidad")),
    ("Suministros › Agua", ("agua", "aqualia", "canal de isabel")),
    ("Suministros › Gas", ("gas natural", "naturgy", "repsol gas")),
    ("Suministros › Telco", ("internet", "fibra", "movistar", "vodafone", "orange", "telefon")),
    ("Alquiler › Ingresos", ("alquiler", "renta", "rent")),
    ("Seguros", ("seguro", "mapfre", "axa", "allianz")),
    ("Comunidad", ("comunidad de propietarios", "comunidad prop", "cuota comunidad")),
    ("Impuestos", ("ibi", "aeat", "hacienda", "impuesto")),
    ("Transferencias", ("transferencia", "traspaso", "bizum")),
)


def infer_category(description: Optional[str], counterparty: Optional[str] = None) -> Optional[str]:
    """Guess a category from the description and counterparty text.

    Returns:
        Category label, or None when no rule matches
    """
    text = normalize_description(f"{description or ''} {counterparty or ''}")
    if not text:
        return None
    words = set(text.replace(",", " ").replace(".", " ").split())
    for category, keywords in CATEGORY_RULES:
        for keyword in keywords:
            if " " in keyword:
                if keyword in text:
                    return category
            elif keyword in words or (len(keyword) > 4 and keyword in text):
                return category
    return None
