"""
Email utility functions
"""
from flask_mail import Mail, Message
from flask import current_app
from markupsafe import escape

mail = Mail()

def format_brl(amount):
    """Format centavos as a BRL string, e.g. 29900 -> 'R$ 299,00'"""
    reais, centavos = divmod(int(amount), 100)
    return f"R$ {reais:,}".replace(',', '.') + f",{centavos:02d}"

def send_email(subject, recipients, body, html=None):
    """
    Send an email

    Args:
        subject: Email subject
        recipients: List of recipient email addresses
        body: Plain text body
        html: HTML body (optional)
    """
    msg = Message(
        subject=subject,
        recipients=recipients,
        body=body,
        html=html
    )
    mail.send(msg)

def send_buyer_email(subject, recipient, body, html=None):
    """
    Send a notice to the buyer.
    Returns False without sending when mail is not configured.
    """
    if 'mail' not in current_app.extensions:
        return False

    if not current_app.config.get('MAIL_SERVER') or not recipient:
        return False

    try:
        send_email(subject, [recipient], body, html)
    except Exception as e:
        current_app.logger.error(f"SMTP error sending email to {recipient}: {str(e)}", exc_info=True)
        raise
    return True

def send_payment_failed_email(transaction):
    """Tell the buyer the PIX payment did not go through"""
    buyer = transaction.buyer_info or {}
    subject = "Pagamento não confirmado"
    body = f"""
Olá {buyer.get('name', '')},

Não conseguimos confirmar o pagamento PIX do plano {transaction.plan_title} ({format_brl(transaction.amount)}).
Status: {transaction.status}

Você pode tentar novamente a qualquer momento gerando um novo código PIX.
"""
    html = _payment_failed_html(buyer.get('name', ''), transaction)
    return send_buyer_email(subject, buyer.get('email'), body, html)

def send_subscription_activated_email(transaction, subscription):
    """Confirm the payment and the access period to the buyer"""
    buyer = transaction.buyer_info or {}
    subject = f"Assinatura ativada - {transaction.plan_title}"
    body = f"""
Olá {buyer.get('name', '')},

Recebemos o pagamento de {format_brl(transaction.amount)}. Sua assinatura está ativa.

Plano: {transaction.plan_title}
Início: {subscription.start_date.strftime('%d/%m/%Y')}
Válida até: {subscription.end_date.strftime('%d/%m/%Y')}
"""
    return send_buyer_email(subject, buyer.get('email'), body)

def _payment_failed_html(name: str, transaction) -> str:
    """HTML template for payment failure notice"""
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"><title>Pagamento não confirmado</title></head>
    <body style="font-family: system-ui, sans-serif; max-width: 600px; margin: 0 auto; padding: 24px;">
        <h2 style="color: #1a1a2e;">Pagamento não confirmado</h2>
        <p>Olá {escape(name)},</p>
        <p>Não conseguimos confirmar o pagamento do plano <strong>{escape(transaction.plan_title or '')}</strong>
        ({format_brl(transaction.amount)}).</p>
        <p>Você pode tentar novamente gerando um novo código PIX.</p>
    </body>
    </html>
    """
