"""
Generate the agent principal's signing key.

Writes ``jwks.json`` (the public key to register on the Okta agent
principal) and ``signer_keys.json`` (private JWK + kid, read by the broker
through ``OKTA_PRIVATE_KEY_PATH``).
"""

import argparse
import json
import secrets
from pathlib import Path
from typing import Tuple

from joserfc.jwk import JWKRegistry


def generate_keys(out_dir: str = ".") -> Tuple[Path, Path, str]:
    """
    Create an RSA-2048 key pair and persist both files in ``out_dir``.

    Returns:
        (jwks.json path, signer_keys.json path, kid)
    """
    priv = JWKRegistry.generate_key("RSA", 2048, private=True, auto_kid=False)

    # Keep the kid stable as long as this key is registered in Okta
    kid = secrets.token_urlsafe(8)

    pub = priv.as_dict(private=False)
    pub["kid"] = kid
    pub["alg"] = "RS256"
    pub["use"] = "sig"

    private_jwk = priv.as_dict(private=True)
    private_jwk["kid"] = kid

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    jwks_path = out / "jwks.json"
    signer_path = out / "signer_keys.json"

    jwks_path.write_text(json.dumps({"keys": [pub]}, indent=2))
    signer_path.write_text(json.dumps({"private_jwk": private_jwk, "kid": kid}, indent=2))
    return jwks_path, signer_path, kid


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate the agent principal RS256 key pair")
    parser.add_argument("--out-dir", default=".", help="directory for jwks.json and signer_keys.json")
    args = parser.parse_args(argv)

    jwks_path, signer_path, kid = generate_keys(args.out_dir)
    print(f"Wrote {jwks_path} and {signer_path} (kid = {kid})")
    print(f"Register the public key in {jwks_path.name} on your Okta agent principal")


if __name__ == "__main__":
    main()
