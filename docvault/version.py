"""DocVault Meta information.
   DocVault keeps document templates and signatures in password-protected,
   client-resident vaults.
"""
__title__ = 'docvault'
__description__ = (
   'Password-derived encrypted vaults for document templates '
   'and saved signatures.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
