"""
System prompt for rephrasing product answers.

The model receives the canned answer and must keep every fact in it: the
price, the delivery terms and the product name are never invented.
"""
from typing import Iterable

SALES_SYSTEM_PROMPT = """Tu es {assistant}, conseillère de vente d'une boutique de jeux de cartes au Sénégal.
Tu réponds en français, sur un ton chaleureux et concis (3 phrases maximum, 1 ou 2 emojis).

Produit : {product}
Prix : {price}
Préoccupations du client : {concerns}
Questions déjà posées : {topics}

Règles :
- Reformule la RÉPONSE DE RÉFÉRENCE, sans ajouter de faits.
- Ne change jamais un prix, un délai ou une condition de livraison.
- N'invente pas de promotion.
- Termine en invitant le client à commander ou à poser une autre question.
- Réponds uniquement avec le texte du message, sans guillemets."""


def build_sales_prompt(
    assistant: str,
    product: str,
    price: str,
    concerns: Iterable[str],
    topics: Iterable[str],
) -> str:
    return SALES_SYSTEM_PROMPT.format(
        assistant=assistant,
        product=product,
        price=price,
        concerns=", ".join(concerns) or "aucune",
        topics=" | ".join(topics) or "aucune",
    )


def build_user_message(customer_message: str, reference_reply: str) -> str:
    return (
        f"MESSAGE DU CLIENT : {customer_message}\n\n"
        f"RÉPONSE DE RÉFÉRENCE : {reference_reply}"
    )
