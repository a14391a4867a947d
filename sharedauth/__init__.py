"""
Cross-service sessions on a shared parent domain.

One service (the issuer) accepts credentials and writes a signed session
token to a cookie scoped to the parent domain. Every participating service,
the issuer included, revalidates that token on each request against the
shared identity store and writes back a freshly issued one.

Quick start
-----------

.. code-block:: python

   from sharedauth.factory import create_service_app

   app = create_service_app({'SERVICE_NAME': 'service-b',
                             'DATABASE_URI': 'mysql://...'})

Routes protected with :func:`sharedauth.auth.decorators.login_required` see
the current :class:`.SessionClaim` as ``request.auth``.
"""
