"""Cross-cutting helpers: errors, clock, validators"""
