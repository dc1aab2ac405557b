"""Scale-down reconciliation for self-hosted GitHub Actions runners on EC2."""
