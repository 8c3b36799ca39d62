"""
Streamlit Frontend for Perfinper

The screens a user works with daily: the transactions of a period, the
fiscal books and the bulk fiscal book operations.

DESIGN PRINCIPLES:
1. The page never changes data the core did not accept
2. Every failure is shown as one short message
3. Lists come from the cache, never straight from the backend
"""

import asyncio
import json

import streamlit as st

from perfinper.cache import ALL_BOOKS, NO_BOOK
from perfinper.config import validate_all_settings
from perfinper.errors import PerfinperError, ValidationError, user_message
from perfinper.fiscal import FiscalBookAction
from perfinper.models import (
    FiscalBookStatus,
    FiscalBookType,
    ReassignmentOperation,
    TransactionType,
)
from perfinper.money import format_currency, normalize
from perfinper.orchestrator import AppComponents, create_app_components
from perfinper.transactions import UPDATED_MESSAGE


# Page configuration
st.set_page_config(
    page_title="Perfinper",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    components = create_app_components()
    run_async(components.cache.initialize())
    return components


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("📒 Perfinper")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navegar para:",
        ["💳 Transações", "📚 Livros Fiscais", "🔀 Operações em Lote", "⚙️ Configurações"],
        index=0,
    )

    if page == "💳 Transações":
        render_transactions_page(components)
    elif page == "📚 Livros Fiscais":
        render_fiscal_books_page(components)
    elif page == "🔀 Operações em Lote":
        render_bulk_page(components)
    elif page == "⚙️ Configurações":
        render_settings_page()


def render_transactions_page(components: AppComponents):
    """Render the transactions list of the selected period."""
    cache = components.cache
    st.title("💳 Transações")

    try:
        periods = run_async(components.editor.unique_periods())
    except PerfinperError as e:
        st.error(user_message(e))
        periods = []

    col1, col2, col3 = st.columns(3)

    with col1:
        options = periods or [cache.selected_period]
        index = options.index(cache.selected_period) if cache.selected_period in options else 0
        period = st.selectbox("Período", options=options, index=index)
        if period and period != cache.selected_period:
            result = run_async(cache.change_period(period))
            if not result.success:
                st.error(result.message)

    with col2:
        term = st.text_input(
            "Buscar",
            value=cache.search_term,
            help="Use '-termo' para excluir registros que contenham o termo",
        )
        if term != cache.search_term:
            cache.search(term)

    with col3:
        books = _load_books(components)
        book_options = [ALL_BOOKS, NO_BOOK] + [book.id for book in books]
        labels = {ALL_BOOKS: "Todos", NO_BOOK: "Sem livro fiscal"}
        labels.update({book.id: book.display_name for book in books})
        book_filter = st.selectbox(
            "Livro fiscal",
            options=book_options,
            format_func=lambda value: labels.get(value, value),
        )
        if book_filter != (cache.fiscal_book_filter or ALL_BOOKS):
            cache.filter_by_fiscal_book(book_filter)

    categories = sorted({t.transaction_category for t in cache.full if t.transaction_category})
    col1, col2, col3 = st.columns([2, 1, 1])
    with col1:
        category = st.selectbox("Categoria", options=[""] + categories)
        if category and st.button("Filtrar categoria"):
            cache.select_category(category)
    with col2:
        if st.button("Mostrar todas"):
            cache.restore()
    with col3:
        if st.button("🔄 Atualizar"):
            result = run_async(cache.refresh())
            if not result.success:
                st.error(result.message)

    summary = cache.summary()
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Transações", summary.count)
    col2.metric("Entradas", format_currency(summary.total_credit))
    col3.metric("Saídas", format_currency(summary.total_debit))
    col4.metric("Saldo", format_currency(summary.balance))

    st.markdown("---")

    for transaction in cache.display:
        with st.expander(
            f"{transaction.transaction_name or '(sem nome)'} | "
            f"{transaction.transaction_value} | {transaction.company_name}"
        ):
            book_label = (
                f"Livro Fiscal: {transaction.fiscal_book_name} ({transaction.fiscal_book_year})"
                if transaction.fiscal_book_id else "Sem livro fiscal"
            )
            st.caption(book_label)
            render_transaction_form(components, transaction)
            if st.button("🗑️ Excluir", key=f"delete-{transaction.id}"):
                result = run_async(cache.delete(transaction.id))
                if result.success:
                    st.success(result.message)
                    st.rerun()
                else:
                    st.error(result.message)

    st.markdown("---")
    if cache.display and st.button("🗑️ Excluir todas as transações listadas", type="secondary"):
        result = run_async(cache.delete_all())
        if result.success:
            st.rerun()
        else:
            st.error(result.message)


def render_transaction_form(components: AppComponents, transaction):
    """Inline edit form of one transaction."""
    with st.form(key=f"edit-{transaction.id}"):
        name = st.text_input("Nome", value=transaction.transaction_name)
        value = st.text_input("Valor", value=transaction.transaction_value)
        types = [None, TransactionType.CREDIT, TransactionType.DEBIT]
        transaction_type = st.selectbox(
            "Tipo",
            options=types,
            index=types.index(transaction.transaction_type),
            format_func=lambda t: "-" if t is None else t.value,
        )
        col1, col2 = st.columns(2)
        save = col1.form_submit_button("💾 Salvar")
        separate = col2.form_submit_button(
            "✂️ Separar itens", disabled=not transaction.can_be_separated,
        )

    if not (save or separate):
        return

    edited = transaction.model_copy(update={
        "transaction_name": name,
        "transaction_value": normalize(value),
        "transaction_type": transaction_type,
    })
    if separate:
        result = run_async(components.editor.update_and_separate(edited))
        if result.success:
            st.success(result.message)
        else:
            st.error(result.message)
        return

    try:
        run_async(components.editor.update(edited))
        st.success(UPDATED_MESSAGE)
    except PerfinperError as e:
        st.error(user_message(e))


def _load_books(components: AppComponents):
    try:
        return run_async(components.load_fiscal_books())
    except PerfinperError as e:
        st.error(user_message(e))
        return []


def render_fiscal_books_page(components: AppComponents):
    """Render the fiscal books list and lifecycle actions."""
    st.title("📚 Livros Fiscais")

    col1, col2, col3 = st.columns(3)
    with col1:
        status = st.selectbox(
            "Status", options=[None] + [s.value for s in FiscalBookStatus],
            format_func=lambda s: "Todos" if s is None else s,
        )
    with col2:
        book_type = st.selectbox(
            "Tipo", options=[None] + [t.value for t in FiscalBookType],
            format_func=lambda t: "Todos" if t is None else t,
        )
    with col3:
        search = st.text_input("Buscar livro")

    try:
        books = run_async(components.fiscal_books.list(
            {"status": status, "book_type": book_type, "search": search or None},
        ))
    except PerfinperError as e:
        st.error(user_message(e))
        books = []

    for book in books:
        with st.expander(f"{book.display_name} | {book.status}"):
            col1, col2, col3 = st.columns(3)
            col1.metric("Entradas", book.formatted_total_income)
            col2.metric("Saídas", book.formatted_total_expenses)
            col3.metric("Saldo", book.formatted_net_amount)
            st.caption(
                f"{book.transaction_count} transação(ões) | criado em {book.created_at_formatted}"
            )
            render_book_actions(components, book)

    st.markdown("---")
    st.markdown("### Novo livro fiscal")
    suggestions = components.rules.name_suggestions(books)
    with st.form("new-fiscal-book"):
        name = st.text_input("Nome", value=suggestions[0] if suggestions else "")
        period = st.text_input("Período (YYYY ou YYYY-MM)")
        book_type = st.selectbox("Tipo de livro", options=[t.value for t in FiscalBookType], index=4)
        notes = st.text_area("Observações")
        submitted = st.form_submit_button("Criar")

    if submitted:
        try:
            run_async(components.fiscal_books.create({
                "bookName": name,
                "bookPeriod": period,
                "bookType": book_type,
                "notes": notes,
            }))
            st.success("Livro fiscal criado")
            st.rerun()
        except ValidationError as e:
            for message in e.errors.values():
                st.error(message)
        except PerfinperError as e:
            st.error(user_message(e))


def render_book_actions(components: AppComponents, book):
    """Lifecycle buttons allowed for the book's status."""
    manager = components.fiscal_books
    actions = [
        (FiscalBookAction.CLOSE, "🔒 Fechar", manager.close),
        (FiscalBookAction.REOPEN, "🔓 Reabrir", manager.reopen),
        (FiscalBookAction.ARCHIVE, "📦 Arquivar", manager.archive),
    ]
    columns = st.columns(len(actions) + 2)

    for column, (action, label, call) in zip(columns, actions):
        if components.rules.can_transition(book.status, action):
            if column.button(label, key=f"{action.value}-{book.id}"):
                try:
                    run_async(call(book))
                    st.rerun()
                except PerfinperError as e:
                    st.error(user_message(e))

    if components.rules.can_delete(book):
        if columns[-2].button("🗑️ Excluir", key=f"delete-book-{book.id}"):
            try:
                run_async(manager.delete(book))
                st.rerun()
            except PerfinperError as e:
                st.error(user_message(e))

    if columns[-1].button("⬇️ Exportar", key=f"export-{book.id}"):
        try:
            data = run_async(manager.export(book.id, "json"))
            st.download_button(
                "Baixar JSON",
                data=json.dumps(data, ensure_ascii=False, indent=2),
                file_name=f"livro-fiscal-{book.id}.json",
                key=f"download-{book.id}",
            )
        except PerfinperError as e:
            st.error(user_message(e))


def render_bulk_page(components: AppComponents):
    """Render the bulk assign / transfer / remove form."""
    st.title("🔀 Operações em Lote")
    cache = components.cache
    books = _load_books(components)
    labels = {book.id: book.display_name for book in books}

    operation = st.radio(
        "Operação",
        options=list(ReassignmentOperation),
        format_func=lambda op: {
            ReassignmentOperation.ASSIGN: "Atribuir a um livro",
            ReassignmentOperation.TRANSFER: "Transferir entre livros",
            ReassignmentOperation.REMOVE: "Remover do livro",
        }[op],
        horizontal=True,
    )

    source_id = None
    target_id = None
    if operation in (ReassignmentOperation.TRANSFER, ReassignmentOperation.REMOVE):
        source_id = st.selectbox(
            "Livro de origem", options=[None] + list(labels),
            format_func=lambda value: "-" if value is None else labels[value],
        )
    if operation in (ReassignmentOperation.ASSIGN, ReassignmentOperation.TRANSFER):
        targets = components.reassignment.available_targets(exclude_id=source_id)
        target_id = st.selectbox(
            "Livro de destino", options=[None] + [book.id for book in targets],
            format_func=lambda value: "-" if value is None else labels[value],
        )

    by_id = {t.id: t for t in cache.display if t.id}
    selected = st.multiselect(
        "Transações",
        options=list(by_id),
        format_func=lambda value: (
            f"{by_id[value].transaction_name} | {by_id[value].transaction_value}"
        ),
    )

    if st.button("Executar", type="primary", disabled=not selected):
        result = run_async(components.reassign(
            operation,
            [by_id[value] for value in selected],
            source_id=source_id,
            target_id=target_id,
        ))
        if result.success:
            st.success(result.message)
        else:
            st.error(result.message)
            if result.detached_ids:
                st.warning(
                    "Transações sem livro fiscal: " + ", ".join(result.detached_ids)
                )


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Configurações")

    st.markdown("### Status da configuração")

    status = validate_all_settings()

    sections = [
        ("Servidor (API)", "api"),
        ("Cache local", "cache"),
        ("Aplicação", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name}")
        else:
            error = status.get(f"{key}_error", "Não configurado")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown(
        "Configure a aplicação com variáveis de ambiente ou um arquivo `.env` "
        "(`PERFINPER_API_BASE_URL`, `PERFINPER_CACHE_STORAGE_PATH`, ...)."
    )


if __name__ == "__main__":
    main()
