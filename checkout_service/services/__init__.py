# Checkout service components
