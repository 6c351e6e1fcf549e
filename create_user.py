"""
Script to create a storefront user or reset their password
Usage: python create_user.py <username> <email> <name> <document> <phone>
"""
import getpass
import sys

from app import create_app
from utils.auth_utils import hash_password
from utils.validators import digits_only, validate_email, validate_password

def create_user(username, email, name, document, phone, password):
    """Create the user, or reset the password if the username exists"""
    app = create_app()
    store = app.extensions['storefront']['store']

    with app.app_context():
        user = store.get_user_by_username(username)

        if user:
            user.password_hash = hash_password(password)
            store.session.commit()
            print(f"[SUCCESS] Password reset for user {username}")
        else:
            user = store.create_user(
                username=username,
                password=password,
                email=email,
                name=name,
                document=digits_only(document),
                phone=digits_only(phone),
            )
            print(f"[SUCCESS] User {username} created")

        print("User ID:", user.id)

if __name__ == '__main__':
    if len(sys.argv) != 6:
        print(__doc__.strip())
        sys.exit(1)

    username, email, name, document, phone = sys.argv[1:]
    if not validate_email(email):
        print("[ERROR] Invalid email address")
        sys.exit(1)

    password = getpass.getpass("Password: ")
    is_valid, error = validate_password(password)
    if not is_valid:
        print(f"[ERROR] {error}")
        sys.exit(1)

    create_user(username, email, name, document, phone, password)
