from sqlalchemy.orm import Session

from uni_feedback.models.faculty import Faculty


def email_domain(email: str) -> str:
    parts = (email or "").lower().split("@")
    return parts[1] if len(parts) == 2 else ""


def get_valid_email_domains(db: Session) -> list[str]:
    domains = set()
    for (suffixes,) in db.query(Faculty.email_suffixes).filter(Faculty.email_suffixes.isnot(None)).all():
        for s in suffixes or []:
            domains.add(s.lower())
    return sorted(domains)


def is_university_email(db: Session, email: str) -> bool:
    domain = email_domain(email)
    if not domain:
        return False
    return domain in get_valid_email_domains(db)


def email_matches_suffixes(email: str, suffixes) -> bool:
    """Empty or missing suffix list means the faculty accepts any address."""
    if not suffixes:
        return True
    domain = email_domain(email)
    return any(domain == s.lower() for s in suffixes)
