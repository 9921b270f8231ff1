#!/usr/bin/env python3
"""
Recompute name/identifier index keys of case parties and affiliated entities.

Needed after changing ENABLE_TRANSLITERATION, STRIP_LEGAL_FORM_PREFIXES or the
legal-form prefix list; stale keys silently miss matches.

Safe by default (dry-run). Use --apply to persist changes.
"""

import argparse


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute conflict index keys safely.")
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry-run)")
    args = parser.parse_args()

    from conflict_service.db.session import get_db_session, init_db
    from conflict_service.db.models import CaseParty, CaseRelatedEntity
    from conflict_service.normalizer import index_keys

    init_db()

    counts = {"parties": 0, "entities": 0}

    with get_db_session() as db:
        for label, model in (("parties", CaseParty), ("entities", CaseRelatedEntity)):
            for row in db.query(model).order_by(model.id).all():
                name_key, identifier_key = index_keys(row.name, row.identifier)
                if (row.name_key, row.identifier_key) == (name_key, identifier_key):
                    continue
                counts[label] += 1
                if args.apply:
                    row.name_key = name_key
                    row.identifier_key = identifier_key
                else:
                    print(f"  {model.__tablename__}#{row.id}: '{row.name_key}' -> '{name_key}'")

        if args.apply:
            db.commit()

    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] Party keys updated: {counts['parties']}")
    print(f"[{mode}] Entity keys updated: {counts['entities']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
