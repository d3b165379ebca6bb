"""
bagsmith databag — turn a template of store keys into an uploaded,
encrypted data bag item.

Modules:
    resolver      resolve(template, item, store) → document, empty values pruned
    secret        ensure_secret(store, item) → True if a new secret was written
    assembler     assemble_and_upload(bag, item, doc, …) → UploadResult
    distributor   SecretDistributor(store, …).distribute(item, targets)
    orchestrator  run(entry, item, …) → InvocationResult
"""
