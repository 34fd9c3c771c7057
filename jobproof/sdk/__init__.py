"""SDK for the enclave trust pipeline."""
