# sevkit

Tools for the tenant side of an AMD SEV guest launch. The package covers:

- setting up the secure channel with the AMD secure processor;
- checking the launch measurement;
- wrapping secrets to inject into the guest;
- building a Virtual Machine Save Area (VMSA);
- a few little-endian binary helpers.

## Installation

```
pip install sevkit
```

To run the test suite, install the `test` extra and run `pytest`:

```
pip install "sevkit[test]"
pytest
```

## Modules

### `sevkit.session`

`Session.create(policy)` starts a session. It creates a random transport encryption key (TEK) and a random transport integrity key (TIK).

A session then moves through these states:

- `Session.session(nonce, iv, z)` wraps the TEK and TIK into a `LaunchSession` for the secure processor.
- `Session.measure()` returns a `MeasuringSession`. Feed it the same data the secure processor measures, using `update_data(data)`.
- `MeasuringSession.verify(build, msr)` or `verify_with_digest(build, msr, digest)` checks the secure processor's `Measurement` against a firmware `Build`. It raises `MeasurementMismatchError` when the two differ.
- `VerifiedSession.secret(flags, data)` encrypts a payload. It returns a `Secret` with its `Header`, ready to inject.

### `sevkit.key`

`Key` holds raw key material. It offers:

- NIST SP 800-108 counter-mode derivation, through `derive(size, ctx, label)`;
- HMAC-SHA256, through `mac(data)`;
- writing the key bytes to a stream, through `encode(writer)`;
- clearing the key bytes in place, through `wipe()`.

### `sevkit.vmsa`

`Vmsa` and `VmcbSegment` model the save area. The initialisers are `init_amd64`, `init_kvm`, `init_qemu` and `init_krun`. `cpu_sku` and `reset_addr` set the CPU signature and the reset vector.

`to_bytes` and `from_bytes` give the packed layout. `to_file` and `from_file` read and write the 4096-byte page used in measurement calculation.

```python
from sevkit.vmsa import Vmsa

vmsa = Vmsa()
vmsa.init_amd64()
vmsa.init_kvm()
vmsa.cpu_sku(0x19, 0x01, 0x1)
vmsa.to_file("vmsa.bin")
```

### `sevkit.parser`

These helpers read and write fixed-size values in little-endian order:

- `Scalar` and `ByteArray` describe the value types.
- `parse_bytes(reader, kind)` and `write_bytes(writer, kind, value)` read and write a value.
- `skip_read(reader, count)` skips bytes on input and raises `InvalidDataError` if the skipped bytes are not zero.
- `skip_write(writer, count)` writes zero padding.

### `sevkit.array`

`Array` is a fixed-length byte container. It has hex renderings (`lower_hex`, `upper_hex`) and a 16-bytes-per-line display through `str()`. It raises `ArrayError` when the data has the wrong length.

### `sevkit.cached_chain`

These functions list the places searched for a cached SEV certificate chain, in this order:

1. `env_var()` gives the `SEV_CHAIN` environment variable.
2. `home()` gives the user cache directory.
3. `system()` gives `/var/cache/amd-sev/chain`.

`path()` returns all three in search order. `rm_cached_chain()` deletes the first one if it exists.