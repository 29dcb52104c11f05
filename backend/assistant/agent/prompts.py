"""
System prompt assembly: base rules, mode instructions, active context
"""
from typing import Optional

from models.chat import ChatMode
from ..context_resolver import ContextId

BASE_PROMPT = """Tu es l'assistant de Verifolio, un outil de gestion pour indépendants \
(clients, deals, devis, factures, missions, propositions, briefs, avis).

Règles:
- Réponds en français, de façon concise.
- Utilise les outils pour lire les données; n'invente jamais de chiffres.
- N'utilise que des identifiants renvoyés par un outil de lecture ou par le contexte \
actif. Si tu ne connais pas l'identifiant, cherche-le d'abord (list_*, get_*).
- Après une action, résume ce qui a été fait (numéro, montant, destinataire)."""

MODE_INSTRUCTIONS = {
    ChatMode.PLAN: """## MODE ACTUEL: PLAN
N'exécute aucune action d'écriture. Utilise uniquement les outils de lecture \
pour collecter le contexte, puis propose un plan numéroté des étapes à réaliser \
et les points d'attention. Termine en invitant à passer en mode AUTO ou DEMANDER.""",

    ChatMode.AUTO: """## MODE ACTUEL: AUTO
Exécute directement les actions sûres (brouillons, clients, contacts) sans \
demander. Les actions critiques (envois, paiements, conversions, changements de \
statut visibles du client) seront soumises à confirmation automatiquement: \
appelle l'outil, ne demande pas toi-même.""",

    ChatMode.DEMANDER: """## MODE ACTUEL: DEMANDER
Chaque action d'écriture sera soumise à la confirmation de l'utilisateur avant \
exécution. Propose une action à la fois en appelant l'outil correspondant. Les \
lectures (list_*, get_*) s'exécutent sans confirmation.""",
}


def build_system_prompt(mode: ChatMode, context: Optional[ContextId]) -> str:
    """Compose the system message for one request"""
    parts = [BASE_PROMPT, MODE_INSTRUCTIONS[mode]]
    if context is not None and context.id:
        parts.append(
            f"## CONTEXTE ACTIF\nL'utilisateur consulte: {context.kind.value} "
            f"(id: {context.id}). Les demandes sans précision portent sur cet élément."
        )
    elif context is not None:
        parts.append(f"## CONTEXTE ACTIF\nL'utilisateur est sur l'écran: {context.kind.value}.")
    return "\n\n".join(parts)


# Replies that mean "I could not do it" although tools were available
TOOL_NUDGE_PATTERNS = (
    r"je ne (peux|suis) pas",
    r"pas accès aux",
    r"pas d['’]information",
    r"impossible de",
    r"aucune donnée",
    r"je n['’]ai pas",
    r"pas de données",
    r"ne dispose pas",
)
