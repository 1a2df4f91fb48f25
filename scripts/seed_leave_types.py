from hrcore.database import SessionLocal, init_db
from hrcore.core.init_system import seed_leave_types


def main():
    init_db()
    db = SessionLocal()
    try:
        created = seed_leave_types(db)
        print(f"Created {created} leave type(s); existing codes were left unchanged.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
