"""Auth domain - Accounts and access tokens"""
