"""
Authentication utility functions
"""
from werkzeug.security import generate_password_hash

def hash_password(password):
    """Generate password hash"""
    return generate_password_hash(password)
