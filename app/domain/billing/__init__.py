"""Billing domain - Subscription plans, Stripe checkout, webhooks and garage visibility"""
