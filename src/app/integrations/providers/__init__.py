"""Platform provider implementations (Webflow, WordPress, Shopify)."""
