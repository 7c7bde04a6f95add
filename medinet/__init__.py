"""Project configuration package for the MediNet referral backend."""
