"""
auth_service tests

Covers the studio authentication service:

- Registration, login and the bearer-token route guard (`test_auth.py`)
- Password hashing and access tokens (`test_passwords.py`, `test_tokens.py`)
- Forgot/reset password flow (`test_password_reset.py`)
- Video progress tracking (`test_progress.py`)
- Social login, event logging, email delivery and DB setup
"""
