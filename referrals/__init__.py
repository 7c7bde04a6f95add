"""Referral application for the MediNet backend.

Accounts, hospitals, clinics, referrals and medical records, the
approval and referral workflows, the access policy that scopes every
read and write, and the API routes exposing them.
"""
