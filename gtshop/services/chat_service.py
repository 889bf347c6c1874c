"""
Chat Service: knowledge-base answers for the storefront help widget
Keyword scoring over kb entries; anything it cannot answer opens a support
ticket for a human agent.
"""

import logging

from gtshop.errors import NotFoundError, NotificationError, RateLimitError, ValidationError
from gtshop.extensions import db
from gtshop.models.knowledge import ChatMessage, KnowledgeEntry, SupportTicket

logger = logging.getLogger(__name__)

CHAT_LIMIT = 20
CHAT_WINDOW_SECONDS = 60
MATCH_THRESHOLD = 0.3
MESSAGE_MAX = 1000

PRICE_REPLY = (
    "Our prices are competitive and updated regularly. Diamond Locks start from "
    "35,000 IDR. You can see current prices when placing an order. Would you like "
    "help with a specific item?"
)
ORDER_REPLY = (
    "I can help you place an order! Simply select RGT or RPS from the main page, "
    "fill out the form, and follow the payment instructions. Do you need help with "
    "a specific step?"
)
ESCALATION_REPLY = (
    "I understand you need help. Let me connect you with a human agent who can "
    "provide more detailed assistance. Your ticket ID is: {ticket_id}"
)

DEFAULT_KB = [
    {
        "id": "payment_methods",
        "question": "What payment methods do you accept?",
        "answer": "We accept DANA, GoPay, and other major Indonesian e-wallets. You can see all "
                  "available payment methods when placing an order.",
        "keywords": ["payment", "method", "dana", "gopay", "ewallet", "transfer"],
        "category": "payment",
    },
    {
        "id": "delivery_time",
        "question": "How long does delivery take?",
        "answer": "RGT orders (Diamond Locks/Blue Gem Locks) are usually processed within 5-15 "
                  "minutes after payment confirmation. RPS items may take 30 minutes to 2 hours "
                  "depending on availability.",
        "keywords": ["delivery", "time", "fast", "how long", "process", "speed"],
        "category": "delivery",
    },
    {
        "id": "order_status",
        "question": "How can I check my order status?",
        "answer": "After placing an order, you will receive updates via WhatsApp. You can also "
                  "check your order history in your account dashboard.",
        "keywords": ["order", "status", "check", "track", "progress"],
        "category": "orders",
    },
    {
        "id": "refund_policy",
        "question": "What is your refund policy?",
        "answer": "Refunds are available if we cannot deliver your order within 24 hours, or if "
                  "there is an error on our part. Digital items cannot be refunded once delivered.",
        "keywords": ["refund", "return", "money back", "cancel", "policy"],
        "category": "policy",
    },
    {
        "id": "account_safety",
        "question": "Is my world and GrowID safe?",
        "answer": "Yes, we only need your world name and GrowID for delivery. We never ask for "
                  "your password and all transactions are secure.",
        "keywords": ["safe", "secure", "password", "hack", "security", "trust"],
        "category": "security",
    },
    {
        "id": "minimum_order",
        "question": "Is there a minimum order amount?",
        "answer": "No minimum order! You can order as little as 1 Diamond Lock or any single RPS item.",
        "keywords": ["minimum", "order", "small", "little", "single"],
        "category": "orders",
    },
]


def score_entry(message_lower, entry):
    score = 0.0
    for keyword in entry.keywords or []:
        if keyword.lower() in message_lower:
            score += 0.2
    question_words = entry.question.lower().split(" ")
    for word in message_lower.split(" "):
        if len(word) > 2 and any(word in qw for qw in question_words):
            score += 0.1
    return score


def best_match(message, entries):
    """Highest scoring entry and its score; ties keep the earlier entry."""
    message_lower = message.lower()
    match, best = None, 0.0
    for entry in entries:
        score = score_entry(message_lower, entry)
        if score > best:
            match, best = entry, score
    return match, best


class ChatService:
    def __init__(self, limiter, notifier):
        self.limiter = limiter
        self.notifier = notifier

    def seed_defaults(self):
        if KnowledgeEntry.query.first() is not None:
            return
        for entry in DEFAULT_KB:
            db.session.add(KnowledgeEntry(**entry))
        db.session.commit()
        logger.info("Seeded %d knowledge base entries", len(DEFAULT_KB))

    def process_message(self, user, message, session_id=None):
        if not self.limiter.hit(f"chat:{user.user_id}", CHAT_LIMIT, CHAT_WINDOW_SECONDS):
            raise RateLimitError("Too many messages. Please slow down.")

        message = (message or "").strip() if isinstance(message, str) else ""
        if not message:
            raise ValidationError("Message is required")
        message = message[:MESSAGE_MAX]
        session_id = str(session_id or user.user_id)[:64]

        ticket = None
        entry, score = best_match(message, KnowledgeEntry.query.order_by(KnowledgeEntry.id).all())
        lowered = message.lower()
        if entry is not None and score > MATCH_THRESHOLD:
            response = entry.answer
        elif "price" in lowered or "cost" in lowered:
            response = PRICE_REPLY
        elif "order" in lowered or "buy" in lowered:
            response = ORDER_REPLY
        else:
            ticket = SupportTicket(user_uid=user.user_id, user_email=user.email, session_id=session_id)
            db.session.add(ticket)
            db.session.flush()
            response = ESCALATION_REPLY.format(ticket_id=ticket.id)

        db.session.add(ChatMessage(session_id=session_id, user_uid=user.user_id, sender="user", text=message))
        db.session.add(ChatMessage(session_id=session_id, user_uid=user.user_id, sender="bot", text=response))
        db.session.commit()

        if ticket is not None:
            logger.info("Support ticket %s opened for %s", ticket.id, user.user_id)
            try:
                self.notifier.notify_ticket(ticket)
            except NotificationError as e:
                logger.warning("Ticket notification failed: %s", e)

        return {"response": response, "ticketId": ticket.id if ticket else None}

    # --- admin --------------------------------------------------------------

    def list_entries(self):
        return KnowledgeEntry.query.order_by(KnowledgeEntry.id).all()

    def upsert_entry(self, entry_id, data):
        question = str(data.get("question") or "").strip()
        answer = str(data.get("answer") or "").strip()
        keywords = data.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(",")]
        keywords = [str(k).strip().lower() for k in keywords if str(k).strip()]

        errors = []
        if not entry_id:
            errors.append("Entry id is required")
        if not question:
            errors.append("Question is required")
        if not answer:
            errors.append("Answer is required")
        if errors:
            raise ValidationError("Invalid knowledge base entry", details=errors)

        entry = db.session.get(KnowledgeEntry, entry_id)
        if entry is None:
            entry = KnowledgeEntry(id=entry_id)
            db.session.add(entry)
        entry.question = question
        entry.answer = answer
        entry.keywords = keywords
        entry.category = str(data.get("category") or "general").strip()
        db.session.commit()
        return entry

    def remove_entry(self, entry_id):
        entry = db.session.get(KnowledgeEntry, entry_id)
        if entry is None:
            raise NotFoundError("Knowledge base entry not found")
        db.session.delete(entry)
        db.session.commit()

    def list_tickets(self, status=None):
        query = SupportTicket.query
        if status:
            query = query.filter_by(status=status)
        return query.order_by(SupportTicket.created_at.desc()).all()
