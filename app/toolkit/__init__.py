"""
Toolkit - shared collaborators for the payment core.

Key components:
    - models.py: AdminSetting, the operator-editable settings store
    - settings_provider.py: AdminSettingsProvider (credential lookup with TTL)
    - services/email.py: EmailService

Usage:
    from toolkit.settings_provider import AdminSettingsProvider
    from toolkit.services.email import EmailService
"""
