"""Virtual file system: tree, registry and the session that owns them.

Layout of a default workspace:
    main.md                 # Main document, never deletable
    assets/
        figure.png          # id "assets/figure.png", content = ephemeral handle

Binary assets hold an ephemeral handle (``blob:<uuid>``) as both content and
binary reference. Handles die with the process; see ``marktex.storage``.
"""
