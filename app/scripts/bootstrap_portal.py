from __future__ import annotations

from app.db.session import SessionLocal
from app.services.bootstrap import run_bootstrap


def main() -> None:
    db = SessionLocal()
    try:
        result = run_bootstrap(db)
    finally:
        db.close()
    print(f"portal bootstrap done: {result}")


if __name__ == "__main__":
    main()
