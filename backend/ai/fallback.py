"""
Canned assistant copy.

Used whenever the text generator is unavailable, slow or returns garbage.
Every reply the step machine produces starts from this copy; the LLM may
only rephrase product Q&A on top of it.
"""
from typing import Iterable

ASSISTANT_NAME = "Rose"

GREETING = (
    "Bonjour 👋 Je suis {assistant}, votre conseillère. {product} vous intéresse ? "
    "Je peux répondre à vos questions ou vous aider à le commander en quelques messages."
)

DEFAULT_ENGAGEMENT = (
    "{product} est à {price}. Souhaitez-vous le commander ou avez-vous une question ?"
)

CONCERN_REPLIES = {
    "price": "{product} est à {price}, pour des heures de jeu en famille ou entre amis 🎲",
    "quality": "Nos jeux sont imprimés sur des cartes épaisses et résistantes, faites pour durer 💪",
    "delivery": (
        "Nous livrons gratuitement à Dakar, et dans les principales villes du Sénégal "
        "pour 2 500 FCFA (offerte dès 50 000 FCFA d'achat) 🛵"
    ),
    "trust": "Chaque commande est suivie, et vous pouvez même payer à la livraison si vous préférez 🤝",
}

GENERIC_ERROR = (
    "Oups, j'ai rencontré un petit souci technique 😅 Vos informations sont conservées, "
    "pouvez-vous réessayer ?"
)


def greeting(product: str) -> str:
    return GREETING.format(assistant=ASSISTANT_NAME, product=product)


def engagement_reply(product: str, price: str, concerns: Iterable[str]) -> str:
    """One sentence per detected concern, or the default pitch."""
    parts = [
        CONCERN_REPLIES[concern].format(product=product, price=price)
        for concern in concerns
        if concern in CONCERN_REPLIES
    ]
    if not parts:
        return DEFAULT_ENGAGEMENT.format(product=product, price=price)
    parts.append("Souhaitez-vous le commander ?")
    return "\n".join(parts)
