"""
Tool catalogue

Importing this module registers every tool into tool_catalogue. Each tool is
its argument model; handlers are external collaborators bound at app start
(see main.create_app).

Conventions:
- `id` is the entity a tool reads or acts on; `<kind>_id` fields are foreign
  references. Every identifier a mutating tool receives is an entity_ref, so
  the safety guard verifies it was observed first.
- critical=True for sends, payments, conversions and status changes that the
  customer sees.
"""
from typing import List, Literal, Optional

from pydantic import Field

from .decorator import tool
from .models import ANY_KIND, ToolArguments, entity_ref


class LineItem(ToolArguments):
    """Ligne de devis ou de facture"""
    description: str = Field(min_length=1, description="Description de la prestation")
    quantite: float = Field(gt=0, description="Quantité")
    prix_unitaire: float = Field(ge=0, description="Prix unitaire HT")
    taux_tva: Optional[float] = Field(default=None, ge=0, le=100, description="Taux de TVA en %")


# ============================================================================
# Clients
# ============================================================================

@tool(
    name="list_clients",
    description="Liste les clients de l'utilisateur, optionnellement filtrés par nom.",
    category="clients",
    entity_kind="client",
    step_label="Charger les clients",
)
class ListClientsArgs(ToolArguments):
    search: Optional[str] = Field(default=None, description="Filtre sur le nom du client")


@tool(
    name="get_client",
    description="Récupère la fiche complète d'un client (contacts, devis, factures).",
    category="clients",
    entity_kind="client",
    step_label="Charger le client",
)
class GetClientArgs(ToolArguments):
    id: str = Field(min_length=1, description="Identifiant du client")


@tool(
    name="create_client",
    description="Crée un nouveau client (particulier ou entreprise).",
    category="clients",
    mutates=True,
    entity_kind="client",
    creates_entity=True,
    step_label="Créer le client",
)
class CreateClientArgs(ToolArguments):
    type: Literal["particulier", "entreprise"] = Field(description="Type de client")
    nom: str = Field(min_length=1, description="Nom du client ou raison sociale")
    email: Optional[str] = Field(default=None, description="Email principal")
    telephone: Optional[str] = Field(default=None, description="Téléphone")
    adresse: Optional[str] = Field(default=None, description="Adresse postale")


@tool(
    name="update_client",
    description="Modifie les informations d'un client existant.",
    category="clients",
    mutates=True,
    entity_kind="client",
    step_label="Mettre à jour le client",
)
class UpdateClientArgs(ToolArguments):
    id: str = entity_ref("client", required=True, description="Identifiant du client")
    nom: Optional[str] = Field(default=None, min_length=1, description="Nouveau nom")
    email: Optional[str] = Field(default=None, description="Nouvel email")
    telephone: Optional[str] = Field(default=None, description="Nouveau téléphone")
    adresse: Optional[str] = Field(default=None, description="Nouvelle adresse")


# ============================================================================
# Contacts
# ============================================================================

@tool(
    name="list_contacts",
    description="Liste les contacts, optionnellement ceux rattachés à un client.",
    category="contacts",
    entity_kind="contact",
    step_label="Charger les contacts",
)
class ListContactsArgs(ToolArguments):
    client_id: Optional[str] = Field(default=None, description="Identifiant du client")


@tool(
    name="create_contact",
    description="Crée un contact (personne physique).",
    category="contacts",
    mutates=True,
    entity_kind="contact",
    creates_entity=True,
    step_label="Créer le contact",
)
class CreateContactArgs(ToolArguments):
    nom: str = Field(min_length=1, description="Nom complet")
    email: Optional[str] = Field(default=None, description="Email")
    telephone: Optional[str] = Field(default=None, description="Téléphone")
    notes: Optional[str] = Field(default=None, description="Notes libres")


@tool(
    name="update_contact",
    description="Modifie un contact existant.",
    category="contacts",
    mutates=True,
    entity_kind="contact",
    step_label="Mettre à jour le contact",
)
class UpdateContactArgs(ToolArguments):
    id: str = entity_ref("contact", required=True, description="Identifiant du contact")
    nom: Optional[str] = Field(default=None, min_length=1, description="Nouveau nom")
    email: Optional[str] = Field(default=None, description="Nouvel email")
    telephone: Optional[str] = Field(default=None, description="Nouveau téléphone")
    notes: Optional[str] = Field(default=None, description="Notes")


@tool(
    name="link_contact_to_client",
    description="Rattache un contact à un client avec son rôle et ses responsabilités.",
    category="contacts",
    mutates=True,
    entity_kind="contact",
    step_label="Lier le contact au client",
)
class LinkContactToClientArgs(ToolArguments):
    contact_id: str = entity_ref("contact", required=True, description="Identifiant du contact")
    client_id: str = entity_ref("client", required=True, description="Identifiant du client")
    role: Optional[str] = Field(default=None, description="Rôle (ex: Directeur, Comptable)")
    is_primary: bool = Field(default=False, description="Contact principal")
    handles_billing: bool = Field(default=False, description="Gère la facturation")
    preferred_channel: Optional[Literal["email", "phone"]] = Field(default=None, description="Canal préféré")


# ============================================================================
# Deals
# ============================================================================

DealStatus = Literal["new", "draft", "sent", "won", "lost", "archived"]


@tool(
    name="list_deals",
    description="Liste les deals (opportunités commerciales).",
    category="deals",
    entity_kind="deal",
    step_label="Charger les deals",
)
class ListDealsArgs(ToolArguments):
    client_id: Optional[str] = Field(default=None, description="Identifiant du client")
    status: Optional[DealStatus] = Field(default=None, description="Statut du deal")


@tool(
    name="get_deal",
    description="Récupère un deal avec ses devis, propositions et briefs.",
    category="deals",
    entity_kind="deal",
    step_label="Charger le deal",
)
class GetDealArgs(ToolArguments):
    id: str = Field(min_length=1, description="Identifiant du deal")


@tool(
    name="create_deal",
    description="Crée un deal pour un client.",
    category="deals",
    mutates=True,
    entity_kind="deal",
    creates_entity=True,
    step_label="Créer le deal",
)
class CreateDealArgs(ToolArguments):
    client_id: Optional[str] = entity_ref("client", description="Identifiant du client")
    title: str = Field(min_length=1, description="Titre du deal")
    description: Optional[str] = Field(default=None, description="Description")
    estimated_amount: Optional[float] = Field(default=None, ge=0, description="Montant estimé HT")


@tool(
    name="update_deal_status",
    description="Change le statut d'un deal.",
    category="deals",
    mutates=True,
    entity_kind="deal",
    step_label="Changer le statut du deal",
)
class UpdateDealStatusArgs(ToolArguments):
    id: str = entity_ref("deal", required=True, description="Identifiant du deal")
    status: DealStatus = Field(description="Nouveau statut")


# ============================================================================
# Quotes
# ============================================================================

@tool(
    name="list_quotes",
    description="Liste les devis.",
    category="quotes",
    entity_kind="quote",
    step_label="Charger les devis",
)
class ListQuotesArgs(ToolArguments):
    status: Optional[Literal["brouillon", "envoye", "accepted", "refused"]] = Field(
        default=None, description="Statut du devis"
    )


@tool(
    name="create_quote",
    description="Crée un devis en brouillon avec ses lignes.",
    category="quotes",
    mutates=True,
    entity_kind="quote",
    creates_entity=True,
    step_label="Créer le devis",
)
class CreateQuoteArgs(ToolArguments):
    client_id: Optional[str] = entity_ref("client", description="Identifiant du client")
    deal_id: Optional[str] = entity_ref("deal", description="Identifiant du deal associé")
    items: List[LineItem] = Field(min_length=1, description="Lignes du devis")
    notes: Optional[str] = Field(default=None, description="Notes")


@tool(
    name="update_quote_status",
    description="Change le statut d'un devis (envoi, acceptation, refus).",
    category="quotes",
    mutates=True,
    critical=True,
    entity_kind="quote",
    step_label="Changer le statut du devis",
)
class UpdateQuoteStatusArgs(ToolArguments):
    id: str = entity_ref("quote", required=True, description="Identifiant du devis")
    status: Literal["brouillon", "envoye", "accepted", "refused"] = Field(description="Nouveau statut")


@tool(
    name="convert_quote_to_invoice",
    description="Convertit un devis accepté en facture. Action définitive.",
    category="quotes",
    mutates=True,
    critical=True,
    entity_kind="invoice",
    creates_entity=True,
    step_label="Convertir en facture",
)
class ConvertQuoteToInvoiceArgs(ToolArguments):
    id: str = entity_ref("quote", required=True, description="Identifiant du devis")


# ============================================================================
# Invoices
# ============================================================================

@tool(
    name="list_invoices",
    description="Liste les factures.",
    category="invoices",
    entity_kind="invoice",
    step_label="Charger les factures",
)
class ListInvoicesArgs(ToolArguments):
    numero: Optional[str] = Field(default=None, description="Numéro de facture (ex: FAC-2025-001)")
    status: Optional[Literal["brouillon", "envoyee", "payee", "annulee"]] = Field(
        default=None, description="Statut de la facture"
    )


@tool(
    name="create_invoice",
    description="Crée une facture en brouillon.",
    category="invoices",
    mutates=True,
    entity_kind="invoice",
    creates_entity=True,
    step_label="Créer la facture",
)
class CreateInvoiceArgs(ToolArguments):
    client_id: Optional[str] = entity_ref("client", description="Identifiant du client")
    mission_id: Optional[str] = entity_ref("mission", description="Identifiant de la mission")
    quote_id: Optional[str] = entity_ref("quote", description="Devis d'origine")
    items: List[LineItem] = Field(min_length=1, description="Lignes de la facture")
    date_echeance: Optional[str] = Field(
        default=None, pattern=r"^\d{4}-\d{2}-\d{2}$", description="Date d'échéance (AAAA-MM-JJ)"
    )
    notes: Optional[str] = Field(default=None, description="Notes")


@tool(
    name="update_invoice",
    description="Modifie une facture en brouillon (dates, notes).",
    category="invoices",
    mutates=True,
    entity_kind="invoice",
    step_label="Mettre à jour la facture",
)
class UpdateInvoiceArgs(ToolArguments):
    id: str = entity_ref("invoice", required=True, description="Identifiant de la facture")
    date_emission: Optional[str] = Field(
        default=None, pattern=r"^\d{4}-\d{2}-\d{2}$", description="Date d'émission (AAAA-MM-JJ)"
    )
    date_echeance: Optional[str] = Field(
        default=None, pattern=r"^\d{4}-\d{2}-\d{2}$", description="Date d'échéance (AAAA-MM-JJ)"
    )
    notes: Optional[str] = Field(default=None, description="Notes")


@tool(
    name="mark_invoice_paid",
    description="Marque une facture comme payée.",
    category="invoices",
    mutates=True,
    critical=True,
    entity_kind="invoice",
    step_label="Marquer comme payée",
)
class MarkInvoicePaidArgs(ToolArguments):
    id: str = entity_ref("invoice", required=True, description="Identifiant de la facture")


@tool(
    name="send_email",
    description="Envoie un devis ou une facture par email au client.",
    category="invoices",
    mutates=True,
    critical=True,
    step_label="Envoyer l'email",
)
class SendEmailArgs(ToolArguments):
    entity_type: Literal["quote", "invoice"] = Field(description="Type de document")
    entity_id: str = entity_ref(ANY_KIND, required=True, description="Identifiant du document")
    to_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Destinataire")


# ============================================================================
# Missions
# ============================================================================

MissionStatus = Literal["in_progress", "delivered", "to_invoice", "invoiced", "paid", "closed", "cancelled"]


@tool(
    name="list_missions",
    description="Liste les missions.",
    category="missions",
    entity_kind="mission",
    step_label="Charger les missions",
)
class ListMissionsArgs(ToolArguments):
    client_id: Optional[str] = Field(default=None, description="Identifiant du client")
    status: Optional[MissionStatus] = Field(default=None, description="Statut de la mission")


@tool(
    name="get_mission",
    description="Récupère une mission avec ses factures.",
    category="missions",
    entity_kind="mission",
    step_label="Charger la mission",
)
class GetMissionArgs(ToolArguments):
    id: str = Field(min_length=1, description="Identifiant de la mission")


@tool(
    name="create_mission",
    description="Crée une mission à partir d'un deal gagné.",
    category="missions",
    mutates=True,
    entity_kind="mission",
    creates_entity=True,
    step_label="Créer la mission",
)
class CreateMissionArgs(ToolArguments):
    deal_id: str = entity_ref("deal", required=True, description="Identifiant du deal")
    title: str = Field(min_length=1, description="Titre de la mission")
    description: Optional[str] = Field(default=None, description="Description")
    estimated_amount: Optional[float] = Field(default=None, ge=0, description="Montant estimé HT")


@tool(
    name="update_mission_status",
    description="Change le statut d'une mission.",
    category="missions",
    mutates=True,
    entity_kind="mission",
    step_label="Changer le statut de la mission",
)
class UpdateMissionStatusArgs(ToolArguments):
    id: str = entity_ref("mission", required=True, description="Identifiant de la mission")
    status: MissionStatus = Field(description="Nouveau statut")


# ============================================================================
# Proposals
# ============================================================================

@tool(
    name="list_proposals",
    description="Liste les propositions commerciales.",
    category="proposals",
    entity_kind="proposal",
    step_label="Charger les propositions",
)
class ListProposalsArgs(ToolArguments):
    client_id: Optional[str] = Field(default=None, description="Identifiant du client")
    status: Optional[Literal["draft", "sent", "commented", "accepted", "refused"]] = Field(
        default=None, description="Statut"
    )


@tool(
    name="list_proposal_templates",
    description="Liste les modèles de propositions commerciales disponibles.",
    category="proposals",
    entity_kind="template",
    step_label="Charger les modèles de proposition",
)
class ListProposalTemplatesArgs(ToolArguments):
    pass


@tool(
    name="create_proposal",
    description="Crée une proposition commerciale pour un deal.",
    category="proposals",
    mutates=True,
    entity_kind="proposal",
    creates_entity=True,
    step_label="Créer la proposition",
)
class CreateProposalArgs(ToolArguments):
    deal_id: str = entity_ref("deal", required=True, description="Identifiant du deal")
    client_id: Optional[str] = entity_ref("client", description="Identifiant du client")
    template_id: Optional[str] = entity_ref("template", description="Modèle de proposition")
    title: Optional[str] = Field(default=None, description="Titre")


@tool(
    name="set_proposal_status",
    description="Change le statut d'une proposition (l'envoi la rend visible au client).",
    category="proposals",
    mutates=True,
    critical=True,
    entity_kind="proposal",
    step_label="Changer le statut",
)
class SetProposalStatusArgs(ToolArguments):
    id: str = entity_ref("proposal", required=True, description="Identifiant de la proposition")
    status: Literal["draft", "sent"] = Field(description="Nouveau statut")


# ============================================================================
# Briefs
# ============================================================================

@tool(
    name="list_briefs",
    description="Liste les briefs (questionnaires client).",
    category="briefs",
    entity_kind="brief",
    step_label="Charger les briefs",
)
class ListBriefsArgs(ToolArguments):
    deal_id: Optional[str] = Field(default=None, description="Identifiant du deal")
    status: Optional[Literal["DRAFT", "SENT", "RESPONDED"]] = Field(default=None, description="Statut")


@tool(
    name="list_brief_templates",
    description="Liste les modèles de briefs disponibles.",
    category="briefs",
    entity_kind="template",
    step_label="Charger les modèles de brief",
)
class ListBriefTemplatesArgs(ToolArguments):
    pass


@tool(
    name="create_brief",
    description="Crée un brief pour un deal.",
    category="briefs",
    mutates=True,
    entity_kind="brief",
    creates_entity=True,
    step_label="Créer le brief",
)
class CreateBriefArgs(ToolArguments):
    deal_id: str = entity_ref("deal", required=True, description="Identifiant du deal")
    title: str = Field(min_length=1, description="Titre du brief")
    template_id: Optional[str] = entity_ref("template", description="Modèle de brief")


@tool(
    name="send_brief",
    description="Envoie un brief au client.",
    category="briefs",
    mutates=True,
    critical=True,
    entity_kind="brief",
    step_label="Envoyer le brief",
)
class SendBriefArgs(ToolArguments):
    id: str = entity_ref("brief", required=True, description="Identifiant du brief")
    send_email: bool = Field(default=True, description="Notifier le client par email")


# ============================================================================
# Reviews
# ============================================================================

@tool(
    name="list_reviews",
    description="Liste les avis clients.",
    category="reviews",
    entity_kind="review",
    step_label="Charger les avis",
)
class ListReviewsArgs(ToolArguments):
    client_id: Optional[str] = Field(default=None, description="Identifiant du client")
    is_published: Optional[bool] = Field(default=None, description="Avis publiés uniquement")


@tool(
    name="create_review_request",
    description="Envoie une demande d'avis au client d'une mission ou d'une facture.",
    category="reviews",
    mutates=True,
    critical=True,
    entity_kind="review",
    creates_entity=True,
    step_label="Envoyer la demande d'avis",
)
class CreateReviewRequestArgs(ToolArguments):
    mission_id: Optional[str] = entity_ref("mission", description="Identifiant de la mission")
    invoice_id: Optional[str] = entity_ref("invoice", description="Identifiant de la facture")
    title: str = Field(min_length=1, description="Titre de la demande")
    context_text: Optional[str] = Field(default=None, description="Contexte affiché au client")


# ============================================================================
# Settings & summary
# ============================================================================

@tool(
    name="get_company_settings",
    description="Récupère les paramètres de l'entreprise (coordonnées, devise, TVA).",
    category="settings",
    step_label="Charger les paramètres",
)
class GetCompanySettingsArgs(ToolArguments):
    pass


@tool(
    name="get_financial_summary",
    description="Résumé financier: impayés, chiffre d'affaires, répartition par client.",
    category="settings",
    entity_kind="invoice",
    step_label="Charger le résumé financier",
)
class GetFinancialSummaryArgs(ToolArguments):
    query_type: Literal["unpaid", "revenue", "by_client", "all"] = Field(description="Type de résumé")
    client_name: Optional[str] = Field(default=None, description="Restreindre à un client")
