"""Tool adapters: one async function per Kite endpoint."""
