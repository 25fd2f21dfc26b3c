"""
Chatbot Service - portal help assistant.

Uses DeepSeek when configured, otherwise (or when the API call fails)
answers from canned keyword responses.
"""

import logging
from typing import Optional

from app.services.deepseek_client import get_deepseek_client

logger = logging.getLogger(__name__)

# (keywords, response, suggestions), checked in order
KEYWORD_RESPONSES = [
    (
        ("fee", "fees", "payment", "pay", "due"),
        "You can view and pay your fees under Fees. Pending and overdue fees are listed with their "
        "due dates, and you can download a receipt for every completed payment.",
        ["Show my pending fees", "How do I download a receipt?", "What payment methods are accepted?"],
    ),
    (
        ("library", "book", "books", "borrow", "renew"),
        "Search the catalogue under Library. You can borrow up to 5 books for 14 days and renew each "
        "loan twice. Late returns are fined per day.",
        ["Search for a book", "Show my borrowed books", "How do I renew a book?"],
    ),
    (
        ("hostel", "room", "roommate", "maintenance"),
        "Hostel lets you request a room, check in or out, raise maintenance requests and ask for a "
        "room change.",
        ["Request a hostel room", "Raise a maintenance request", "Request a room change"],
    ),
    (
        ("grade", "grades", "result", "results", "exam", "exams", "cgpa", "transcript", "timetable"),
        "Your exam timetable, published results and a semester-wise transcript with CGPA are under "
        "Exams.",
        ["Show my exam timetable", "What is my CGPA?", "Show my latest results"],
    ),
    (
        ("placement", "placements", "job", "jobs", "interview", "internship", "company"),
        "Placements lists open jobs you are eligible for. Apply with a cover letter and track your "
        "applications and interview schedule there.",
        ["Show recommended jobs", "Check my application status", "Show my interviews"],
    ),
]

DEFAULT_RESPONSE = (
    "I can help with fees, library, hostel, exams and placements. What would you like to know?"
)
DEFAULT_SUGGESTIONS = ["Check my fees", "Library help", "Exam timetable", "Placement opportunities"]


def keyword_reply(message: str) -> dict:
    words = set(message.lower().replace("?", " ").replace(",", " ").replace(".", " ").split())
    for keywords, response, suggestions in KEYWORD_RESPONSES:
        if words.intersection(keywords):
            return {"response": response, "suggestions": suggestions}
    return {"response": DEFAULT_RESPONSE, "suggestions": DEFAULT_SUGGESTIONS}


def get_reply(message: str, context: Optional[dict] = None) -> dict:
    """Reply with {response, suggestions, source}."""
    canned = keyword_reply(message)
    client = get_deepseek_client()
    if client is not None:
        try:
            return {"response": client.answer(message, context), "suggestions": canned["suggestions"], "source": "ai"}
        except Exception as e:
            logger.warning(f"Chatbot AI reply failed, using keyword response: {e}")
    return {**canned, "source": "keyword"}
