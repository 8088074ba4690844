"""Bookstore storefront: cart, checkout and order commit.

The package is organised leaves first:
- money / tax: integer-cent arithmetic and the tax calculator
- cart / cart_cookie: immutable cart snapshots and their signed cookie
- ledger: optimistic (compare-and-swap) stock decrements
- checkout: the order commit orchestrator
- payments / service: payment verification and the surrounding checkout flow
- orders: status transitions and cancellation with restock
- router: the FastAPI surface
"""
