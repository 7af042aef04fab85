from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, the form every datetime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def compute_fine(due_date, now, per_day=1):
    """Fine for a loan due at ``due_date`` if settled at ``now``.

    One ``per_day`` unit per whole day past the due date; partial days do
    not count.
    """
    if now <= due_date:
        return 0
    return (now - due_date).days * per_day


def project_fine(loan, now, per_day=1):
    """Stored fine for returned loans, the running fine for open ones."""
    if loan.returned:
        return loan.fine
    return compute_fine(loan.due_date, now, per_day)


def is_overdue(loan, now):
    return not loan.returned and now > loan.due_date
