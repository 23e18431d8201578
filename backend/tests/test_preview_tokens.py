from sitebuilder.services.preview_tokens import PreviewTokenSigner


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_issued_token_grants_its_bundle():
    signer = PreviewTokenSigner("secret", ttl_seconds=300)

    grant = signer.verify(signer.issue("p1", 2, "alice"), "p1", 2)

    assert grant is not None
    assert (grant.project_id, grant.revision_number, grant.user_id) == ("p1", 2, "alice")


def test_token_for_another_bundle_is_rejected():
    signer = PreviewTokenSigner("secret")
    token = signer.issue("p1", 2, "alice")

    assert signer.verify(token, "p1", 3) is None
    assert signer.verify(token, "p2", 2) is None


def test_token_signed_with_another_secret_is_rejected():
    token = PreviewTokenSigner("other").issue("p1", 2, "alice")

    assert PreviewTokenSigner("secret").verify(token, "p1", 2) is None


def test_malformed_tokens_are_rejected():
    signer = PreviewTokenSigner("secret")

    assert signer.verify("", "p1", 2) is None
    assert signer.verify("no-dot", "p1", 2) is None
    assert signer.verify("a.b.c", "p1", 2) is None
    assert signer.verify("!!!.deadbeef", "p1", 2) is None


def test_token_expires_after_ttl():
    clock = FakeClock()
    signer = PreviewTokenSigner("secret", ttl_seconds=300, clock=clock)
    token = signer.issue("p1", 2, "alice")

    clock.now += 299
    assert signer.verify(token, "p1", 2) is not None

    clock.now += 2
    assert signer.verify(token, "p1", 2) is None
