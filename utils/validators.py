"""
Input validation helpers
"""
import re

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class ValidationError(Exception):
    """Buyer input rejected; `errors` maps field name to message."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__('; '.join(f"{field}: {message}" for field, message in errors.items()))


def validate_email(email):
    """Check email shape"""
    return bool(email) and EMAIL_RE.match(email) is not None


def validate_password(password):
    """Return (is_valid, error_message)"""
    if not password or len(password) < 8:
        return False, 'Password must be at least 8 characters.'
    return True, None


def digits_only(value):
    return ''.join(filter(str.isdigit, value or ''))


def _text(form, key):
    value = form.get(key)
    return value.strip() if isinstance(value, str) else ''


def validate_checkout_form(form):
    """
    Validate and normalize the checkout form.

    Args:
        form: dict with name, email, document, phone, plan, price, title

    Returns:
        dict: cleaned form (document and phone reduced to digits, price as int)

    Raises:
        ValidationError: with one message per invalid field
    """
    if not isinstance(form, dict):
        raise ValidationError({'form': 'Invalid checkout data.'})

    errors = {}
    name = _text(form, 'name')
    email = _text(form, 'email').lower()
    document = digits_only(form.get('document') if isinstance(form.get('document'), str) else '')
    phone = digits_only(form.get('phone') if isinstance(form.get('phone'), str) else '')
    plan = _text(form, 'plan')
    title = _text(form, 'title')
    price = form.get('price')

    if len(name) < 2:
        errors['name'] = 'Nome deve ter pelo menos 2 caracteres'
    if not validate_email(email):
        errors['email'] = 'Digite um e-mail válido'
    if len(document) != 11:
        errors['document'] = 'CPF deve ter 11 dígitos'
    if len(phone) < 10:
        errors['phone'] = 'Telefone deve ter pelo menos 10 dígitos'
    if not plan:
        errors['plan'] = 'Plano é obrigatório'
    if not title:
        errors['title'] = 'Título do plano é obrigatório'
    # Amounts are integer centavos; bool is an int subclass and is not a price
    if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
        errors['price'] = 'Preço deve ser um valor inteiro em centavos'

    if errors:
        raise ValidationError(errors)

    return {
        'name': name,
        'email': email,
        'document': document,
        'phone': phone,
        'plan': plan,
        'title': title,
        'price': price,
    }
