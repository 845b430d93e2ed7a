"""Meeting pre-filter: cheap, deterministic pattern scoring run before any inference call.

Each rule bank contributes to a score; the score maps to a confidence tier. Anything
scoring below the low threshold is dropped without spending a model call.
"""

import re

from meetwatch.models.meeting import MeetingDetectionResult

DAYS_OF_WEEK = [
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "mon", "tue", "tues", "wed", "thu", "thur", "thurs", "fri", "sat", "sun",
]

MONTHS = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
]


def _rx(pattern: str, flags: int = re.I) -> re.Pattern:
    return re.compile(pattern, flags)


TIME_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("day_of_week", _rx(r"\b(" + "|".join(DAYS_OF_WEEK) + r")\b")),
    ("month", _rx(r"\b(" + "|".join(MONTHS) + r")\b")),
    ("relative_day", _rx(r"\b(today|tomorrow|tonight|this evening|this afternoon|this morning)\b")),
    ("relative_week", _rx(r"\b(next week|this week|end of week|following week)\b")),
    ("relative_month", _rx(r"\b(next month|this month|end of month)\b")),
    ("relative_future", _rx(r"\b(next|coming|following)\s+(few\s+)?(days?|weeks?|months?)\b")),
    ("specific_time", _rx(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm|a\.m\.|p\.m\.)(?=\W|$)")),
    ("at_time", _rx(r"(?:\bat\b|@)\s*\d{1,2}(?::\d{2})?(?:\b|(?=\s|$|[?!.,]))")),
    ("time_format", _rx(r"\b\d{1,2}:\d{2}\b", 0)),
    ("named_time", _rx(r"\b(noon|midday|midnight)\b")),
    ("oclock", _rx(r"\bo'clock\b")),
    ("date_format", _rx(r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b", 0)),
    ("ordinal_date", _rx(r"\b(?:the\s+)?\d{1,2}(?:st|nd|rd|th)\b")),
    ("duration", _rx(r"\b(\d+)\s*(min(?:ute)?s?|hours?|hrs?)\b")),
    ("half_hour", _rx(r"\bhalf\s*(?:an?\s*)?hour\b")),
]

# (label, strength, pattern)
MEETING_PATTERNS: list[tuple[str, str, re.Pattern]] = [
    ("meeting", "strong", _rx(r"\b(meeting|meetings)\b")),
    ("appointment", "strong", _rx(r"\b(appointment|appointments)\b")),
    ("interview", "strong", _rx(r"\b(interview|interviews)\b")),
    ("schedule", "strong", _rx(r"\b(schedule|scheduling|scheduled|reschedule|rescheduling)\b")),
    ("calendar", "strong", _rx(r"\b(calendar invite|calendar event)\b")),
    ("book_meeting", "strong", _rx(r"\b(book(?:ed|ing)?)\s+(?:a\s+)?(?:time|slot|call|meeting)\b")),
    ("call", "medium", _rx(r"\b(call|calls|phone call|video call)\b")),
    ("chat", "medium", _rx(r"\b(chat|quick chat)\b")),
    ("sync", "medium", _rx(r"\b(sync|sync up|syncing)\b")),
    ("catch_up", "medium", _rx(r"\b(catch up|catching up)\b")),
    ("get_together", "medium", _rx(r"\b(get together|meet up|meetup)\b")),
    ("one_on_one", "medium", _rx(r"(\b1:1\b|\bone-on-one\b|\bone on one\b)")),
    ("standup", "medium", _rx(r"\b(standup|stand-up|stand up|huddle)\b")),
    ("demo", "medium", _rx(r"\b(demo|demos|presentation|presentations)\b")),
    ("workshop", "medium", _rx(r"\b(workshop|workshops|session|sessions)\b")),
    ("consultation", "medium", _rx(r"\b(consultation|consultations)\b")),
    ("webinar", "medium", _rx(r"\b(webinar|webinars)\b")),
    ("video_platform", "strong", _rx(r"\b(zoom|google meet|teams meeting|skype|facetime|webex)\b")),
    ("google_meet_url", "strong", _rx(r"\bmeet\.google\.com\b")),
    ("zoom_url", "strong", _rx(r"\bzoom\.us\b")),
    ("coffee", "weak", _rx(r"\b(coffee|coffees|grab coffee|get coffee)\b")),
    ("lunch", "weak", _rx(r"\b(lunch|lunches|grab lunch)\b")),
    ("dinner", "weak", _rx(r"\b(dinner|dinners)\b")),
    ("breakfast", "weak", _rx(r"\b(breakfast|brunch)\b")),
    ("drinks", "weak", _rx(r"\b(drinks|happy hour|grab drinks)\b")),
    ("food", "weak", _rx(r"\b(grab a bite|get food)\b")),
    ("hangout", "weak", _rx(r"\b(hang out|hangout)\b")),
]

SCHEDULING_PHRASES: list[tuple[str, re.Pattern]] = [
    # availability questions
    ("availability_question", _rx(r"\bare you (free|available|around)\b")),
    ("when_question", _rx(r"\bwhen (are you|is|works|would work)\b")),
    ("what_time", _rx(r"\bwhat time (works|is good|would work)\b")),
    ("does_work", _rx(r"\bdoes .{1,30} work\b")),
    ("would_work", _rx(r"\bwould .{1,30} work\b")),
    ("can_meet", _rx(r"\bcan (you|we) (meet|do|make)\b")),
    ("ask_availability", _rx(r"\bwhat('s| is) your (availability|schedule)\b")),
    # proposals
    ("how_about", _rx(r"\bhow about\b")),
    ("how_does_sound", _rx(r"\bhow does .{1,30} (sound|work)\b")),
    ("lets_schedule", _rx(r"\blet's (schedule|set up|arrange|plan|find time|meet|chat|talk|connect)\b")),
    ("should_we_meet", _rx(r"\bshould we (meet|schedule|set up|chat|talk|connect)\b")),
    ("want_to_meet", _rx(r"\bwant to (meet|grab|get together|catch up|chat|talk|connect)\b")),
    ("would_like_to", _rx(r"\bwould (love|like) to (meet|chat|connect|catch up|talk)\b")),
    ("like_to_meet", _rx(r"\b(love|like) to (meet|connect|chat|catch up)\b")),
    # actions
    ("set_up_time", _rx(r"\bset up (a|some) time\b")),
    ("find_time", _rx(r"\bfind (a |some )?time\b")),
    ("block_time", _rx(r"\bblock (off |out )?(some )?time\b")),
    ("pencil_in", _rx(r"\bpencil (you |this )?in\b")),
    ("put_on_calendar", _rx(r"\bput (it |this )?on (the |your )?calendar\b")),
    ("send_invite", _rx(r"\bsend (you |over )?(a |an )?(calendar )?invite\b")),
    # responses
    ("let_me_know", _rx(r"\blet me know (when|what|if|your)\b")),
    ("get_back_to", _rx(r"\bget back to (me|you)\b")),
    ("looking_forward", _rx(r"\blooking forward to (meeting|seeing|chatting|talking|connecting)\b")),
    ("confirming", _rx(r"\bconfirm(ing|ed)?\s+(the\s+)?(meeting|time|call|appointment)\b")),
    # availability statements
    ("im_available", _rx(r"\bi('m| am) (free|available|open)\b")),
    ("my_calendar", _rx(r"\bmy (calendar|schedule) (is|looks)\b")),
    ("i_can_do", _rx(r"\bi (can|could) (do|make|meet)\b")),
]

# Short affirmative replies to an earlier proposal. The thread decides whether they confirm anything.
ACCEPTANCE_PHRASES: list[tuple[str, re.Pattern]] = [
    ("sounds_good", _rx(r"\bsounds (good|great|perfect|fine)\b")),
    ("works_for_me", _rx(r"\b(that|this|it|\d\w*) works\b|\bworks for (me|us)\b")),
    ("see_you", _rx(r"\bsee you (then|there|on|at|soon)\b")),
    ("confirmed", _rx(r"\b(confirmed|it's a date|count me in|i'll be there)\b")),
    ("affirmative", _rx(r"^\s*(yes|yep|yeah|sure|perfect|great|deal|absolutely|definitely)\b", re.I | re.M)),
]

NEGATIVE_PATTERNS: list[re.Pattern] = [
    # marketing
    _rx(r"\bunsubscribe\b"),
    _rx(r"\bmarketing\s*preferences\b"),
    _rx(r"\bpromoti(on|onal)\b"),
    # automated
    _rx(r"\bdo[\s-]*not[\s-]*reply\b"),
    _rx(r"\bnoreply@"),
    _rx(r"\bautomated (message|email|notification)\b"),
    # past meetings
    _rx(r"\b(met|had a meeting|was great meeting)\b"),
    _rx(r"\bthanks for (meeting|your time|chatting)\b"),
    # calendar notifications for events that already exist
    _rx(r"\binvitation:\s"),
    _rx(r"\baccepted:\s"),
    _rx(r"\bdeclined:\s"),
    _rx(r"\bupdated invitation\b"),
    _rx(r"\bcanceled event\b"),
]

STRENGTH_WEIGHTS = {"strong": 3.0, "medium": 1.5, "weak": 1.0}
SCHEDULING_WEIGHT = 3.0
ACCEPTANCE_WEIGHT = 2.0
TIME_WEIGHT = 1.5

HIGH_THRESHOLD = 4.0
MEDIUM_THRESHOLD = 3.0
LOW_THRESHOLD = 2.0


def detect_text(text: str) -> MeetingDetectionResult:
    """Score already-combined text."""
    text = text or ""
    if any(p.search(text) for p in NEGATIVE_PATTERNS):
        return MeetingDetectionResult(
            has_potential_meeting=False,
            confidence_tier="low",
            score=0.0,
            matched_patterns=["negative_signal"],
        )

    matched: list[str] = []
    score = 0.0

    for label, pattern in SCHEDULING_PHRASES:
        if pattern.search(text):
            matched.append(f"scheduling:{label}")
            score += SCHEDULING_WEIGHT

    acceptance = [label for label, pattern in ACCEPTANCE_PHRASES if pattern.search(text)]
    if acceptance:
        matched.extend(f"acceptance:{label}" for label in acceptance)
        score += ACCEPTANCE_WEIGHT

    times = [label for label, pattern in TIME_PATTERNS if pattern.search(text)]
    if times:
        matched.extend(f"time:{label}" for label in times)
        score += TIME_WEIGHT

    for label, strength, pattern in MEETING_PATTERNS:
        if pattern.search(text):
            matched.append(f"meeting:{label}")
            score += STRENGTH_WEIGHTS[strength]

    if score >= HIGH_THRESHOLD:
        tier = "high"
    elif score >= MEDIUM_THRESHOLD:
        tier = "medium"
    else:
        tier = "low"

    return MeetingDetectionResult(
        has_potential_meeting=score >= LOW_THRESHOLD,
        confidence_tier=tier,
        score=score,
        matched_patterns=matched,
    )


def detect(subject: str | None, body: str | None) -> MeetingDetectionResult:
    """Pre-filter one email. Pure: same subject/body, same result."""
    return detect_text(f"{subject or ''}\n\n{body or ''}")
