# scripts/create_admin.py
from getpass import getpass
from neigh import create_app
from neigh.extensions import db
from neigh.models.user import User
from neigh.seed import seed_all


def main():
    app = create_app()
    with app.app_context():
        db.create_all()
        seed_all()

        email = input("Admin email: ").strip().lower()
        name = input("Full name: ").strip()
        phone = input("Phone (optional): ").strip()
        password = getpass("Password: ")

        # Check existing
        existing = User.query.filter_by(email=email).first()
        if existing:
            if existing.role != "admin":
                existing.role = "admin"
                db.session.commit()
                print(f"Promoted {email} to admin.")
            else:
                print("User with that email is already an admin.")
            return

        user = User(name=name, email=email, phone=phone or None, role="admin")
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Admin user {email} created successfully.")

if __name__ == "__main__":
    main()
